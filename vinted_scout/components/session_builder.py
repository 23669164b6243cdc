"""
Session construction from a browser cookie string.
"""

import base64
import json
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from ..models.config import DEFAULT_USER_AGENT, MarketplaceConfig
from ..models.session import Session
from ..utils.error_handling import MissingCredential
from ..utils.logging import get_logger

logger = get_logger("session.builder")

ACCESS_TOKEN_COOKIE = "access_token_web"


def parse_cookie_string(cookie_string: Optional[str]) -> List[Tuple[str, str]]:
    """Split ``name=value; name2=value2`` into ordered pairs, skipping malformed parts."""
    pairs: List[Tuple[str, str]] = []
    if not cookie_string:
        return pairs
    for part in cookie_string.split(";"):
        name, sep, value = part.strip().partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        pairs.append((name, value.strip()))
    return pairs


def decode_token_expiry(token: str) -> Optional[datetime]:
    """
    Read the ``exp`` claim of a JWT-shaped token without verifying it.

    Returns None when the token is not a JWT or carries no expiry.
    """
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload.encode("ascii")))
    except (ValueError, UnicodeError):
        return None
    exp = claims.get("exp") if isinstance(claims, dict) else None
    if not isinstance(exp, (int, float)) or isinstance(exp, bool):
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)


class SessionBuilder:
    """Builds authenticated sessions and the browser-like headers sent with them."""

    def __init__(self, marketplace: Optional[MarketplaceConfig] = None):
        self.marketplace = marketplace or MarketplaceConfig()

    def build_session(self, cookie_string: Optional[str], user_agent: Optional[str] = None) -> Session:
        """
        Build a session from a raw cookie string.

        Raises:
            MissingCredential: When the access token cookie is absent or empty
        """
        cookies: Dict[str, str] = dict(parse_cookie_string(cookie_string))
        token = cookies.get(ACCESS_TOKEN_COOKIE, "")
        if not token:
            raise MissingCredential(f"Cookie '{ACCESS_TOKEN_COOKIE}' is missing or empty")

        expires_at = decode_token_expiry(token)
        if expires_at is not None and expires_at <= datetime.now(timezone.utc):
            logger.warning(f"Access token already expired at {expires_at.isoformat()}")

        return Session(
            auth_token=token,
            cookie_header="; ".join(f"{name}={value}" for name, value in parse_cookie_string(cookie_string)),
            user_agent=user_agent or self.marketplace.user_agent or DEFAULT_USER_AGENT,
            referer=self.marketplace.referer,
            token_expires_at=expires_at,
        )

    def build_headers(self, session: Session) -> Dict[str, str]:
        """Browser-like request headers for the marketplace JSON API."""
        return {
            "accept": "application/json, text/plain, */*",
            "accept-language": self.marketplace.accept_language,
            "cookie": session.cookie_header,
            "referer": session.referer,
            "user-agent": session.user_agent,
            "sec-fetch-dest": "empty",
            "sec-fetch-mode": "cors",
            "sec-fetch-site": "same-origin",
        }


def build_session(cookie_string: Optional[str], user_agent: Optional[str] = None) -> Session:
    """Build a session with the default marketplace settings."""
    return SessionBuilder().build_session(cookie_string, user_agent)
