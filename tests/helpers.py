"""
Factories for listings, raw API payloads and HTTP responses used across tests.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from vinted_scout.models.item import Item

COOKIE_STRING = "anon_id=abc-123; access_token_web=token-value; v_udt=xyz"


def make_item(item_id=1, title="Dragon Quest XI Switch", **overrides) -> Item:
    """Build a normalized listing with sensible defaults."""
    fields = dict(
        id=item_id,
        title=title,
        price_amount=20.0,
        price_currency="EUR",
        url=f"https://www.vinted.fr/items/{item_id}",
        can_buy=True,
        is_reserved=False,
        added_since=datetime.now(timezone.utc) - timedelta(hours=2),
    )
    fields.update(overrides)
    return Item(**fields)


def raw_search_item(item_id=1, title="Dragon Quest XI Switch", age_days=0.1, **overrides) -> dict:
    """Build a raw catalogue search listing as the API returns it."""
    created = datetime.now(timezone.utc) - timedelta(days=age_days)
    raw = {
        "id": item_id,
        "title": title,
        "price": {"amount": "25.0", "currency_code": "EUR"},
        "is_reserved": False,
        "can_buy": True,
        "user": {"login": "seller", "business": False},
        "photo": {"id": item_id * 10, "url": f"https://images.vinted.net/{item_id}.jpg"},
        "created_at_ts": int(created.timestamp()),
        "url": f"https://www.vinted.fr/items/{item_id}-listing",
        "brand_title": "Nintendo",
        "favourite_count": 3,
        "view_count": 40,
    }
    raw.update(overrides)
    return raw


def raw_promoted_item(item_id=1, title="Dragon Quest XI Switch", price="27.0", **overrides) -> dict:
    """Build a raw promoted closets listing: string prices, no availability flags."""
    raw = {
        "id": item_id,
        "title": title,
        "price": price,
        "currency": "EUR",
        "total_item_price": "29.05",
        "status": "Très bon état",
        "user_id": 42,
        "business_user": False,
        "path": f"/items/{item_id}-listing",
        "photos": [{"id": item_id * 10, "url": f"https://images.vinted.net/{item_id}.jpg"}],
    }
    raw.update(overrides)
    return raw


def search_page(items, current_page=1, total_pages=3, total_entries=100) -> dict:
    return {
        "items": items,
        "pagination": {
            "current_page": current_page,
            "total_pages": total_pages,
            "total_entries": total_entries,
        },
    }


def promoted_page(items) -> dict:
    return {"promoted_closets": [{"id": 1, "items": items}]}


def fake_response(status_code=200, payload=None) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    return response
