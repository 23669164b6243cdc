"""
Authenticated session model.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional


@dataclass(frozen=True)
class Session:
    """Credentials and headers material for marketplace requests. Never persisted."""

    auth_token: str
    cookie_header: str
    user_agent: str
    referer: str
    token_expires_at: Optional[datetime] = None

    def expires_within(self, delta: timedelta, now: Optional[datetime] = None) -> bool:
        """True when the token's known expiry falls within ``delta`` of ``now``."""
        if self.token_expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.token_expires_at - now <= delta

    def validate(self) -> bool:
        if not self.auth_token:
            raise ValueError("Session auth token cannot be empty")
        if not self.cookie_header:
            raise ValueError("Session cookie header cannot be empty")
        return True

    def __repr__(self) -> str:
        return (
            f"Session(auth_token='***', user_agent={self.user_agent!r}, "
            f"token_expires_at={self.token_expires_at!r})"
        )
