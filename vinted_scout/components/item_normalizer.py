"""
Listing normalization for the Vinted scout.

This module converts the raw JSON listings returned by the catalogue search,
promoted closets and homepage endpoints into ``Item`` objects, and locates
the raw listing array inside each response shape.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from ..models.item import Item, Photo
from ..utils.error_handling import UpstreamShapeError, get_error_tracker
from ..utils.logging import get_logger

logger = get_logger("item.normalizer")

DEFAULT_CURRENCY = "EUR"


def _to_float(value: Any) -> Optional[float]:
    """Coerce numbers and numeric strings ("27.0", "12,50") to float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", "."))
        except ValueError:
            return None
    return None


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _from_epoch(value: float) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        logger.debug(f"Epoch timestamp out of range: {value!r}")
        return None


def _parse_timestamp(raw: Dict[str, Any]) -> Optional[datetime]:
    """Listing creation time from epoch seconds or an ISO string."""
    epoch = raw.get("created_at_ts")
    if isinstance(epoch, (int, float)) and not isinstance(epoch, bool) and epoch > 0:
        parsed_epoch = _from_epoch(epoch)
        if parsed_epoch is not None:
            return parsed_epoch

    for key in ("added_since", "created_at", "updated_at_ts"):
        value = raw.get(key)
        if not value:
            continue
        if isinstance(value, (int, float)):
            parsed_epoch = _from_epoch(value)
            if parsed_epoch is None:
                continue
            return parsed_epoch
        try:
            parsed = date_parser.parse(str(value))
        except (ValueError, OverflowError):
            logger.debug(f"Unparsable listing date {value!r}")
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def _raw_id(raw: Any) -> Any:
    return raw.get("id") if isinstance(raw, dict) else None


def _parse_photo(data: Any, is_main_default: bool) -> Optional[Photo]:
    if not isinstance(data, dict):
        return None
    url = data.get("url") or data.get("full_size_url")
    if not url:
        return None
    is_main = data.get("is_main")
    return Photo(
        url=url,
        is_main=is_main_default if is_main is None else bool(is_main),
        id=data.get("id"),
        width=data.get("width"),
        height=data.get("height"),
    )


def _parse_photos(raw: Dict[str, Any]) -> List[Photo]:
    """Main photo first, then additional photos without duplicates."""
    photos: List[Photo] = []
    main = _parse_photo(raw.get("photo"), True)
    if main:
        photos.append(main)

    for data in raw.get("photos") or []:
        photo = _parse_photo(data, False)
        if photo is None:
            continue
        if any(
            (photo.id is not None and existing.id == photo.id) or existing.url == photo.url
            for existing in photos
        ):
            continue
        photos.append(photo)
    return photos


class ItemNormalizer:
    """Maps raw listing JSON from any feed onto ``Item``."""

    def __init__(self, base_url: str = "https://www.vinted.fr"):
        self.base_url = base_url.rstrip("/")

    def build_url(self, raw: Dict[str, Any], item_id: int) -> str:
        url = raw.get("url")
        if isinstance(url, str) and url.startswith(("http://", "https://")):
            return url
        path = url if isinstance(url, str) and url.startswith("/") else raw.get("path")
        if isinstance(path, str) and path.startswith("/"):
            return f"{self.base_url}{path}"
        return f"{self.base_url}/items/{item_id}"

    def _parse_price(self, raw: Dict[str, Any]):
        """Return (amount, currency, total amount)."""
        price = raw.get("price")
        if isinstance(price, dict):
            amount = _to_float(price.get("amount"))
            currency = price.get("currency_code") or raw.get("currency") or DEFAULT_CURRENCY
        else:
            amount = _to_float(price)
            currency = raw.get("currency") or DEFAULT_CURRENCY

        total = raw.get("total_item_price")
        if isinstance(total, dict):
            total = total.get("amount")
        total_amount = _to_float(total)
        if total_amount is not None and total_amount <= 0:
            total_amount = None

        if amount is None or amount < 0:
            amount = 0.0
        return amount, currency, total_amount

    def _parse_seller(self, raw: Dict[str, Any]):
        user = raw.get("user")
        if isinstance(user, dict):
            return user.get("login"), bool(user.get("business", False))
        login = raw.get("user_login")
        return login, bool(raw.get("business_user", False))

    def _parse_availability(self, raw: Dict[str, Any], assume_available: bool):
        can_buy = raw.get("can_buy")
        if can_buy is None:
            can_buy = raw.get("is_available")
        if can_buy is None:
            can_buy = assume_available

        is_reserved = raw.get("is_reserved")
        if is_reserved is None:
            is_reserved = raw.get("reserved", False)
        return bool(can_buy), bool(is_reserved)

    def _parse_search_score(self, raw: Dict[str, Any]) -> Optional[float]:
        tracking = raw.get("search_tracking_params")
        if isinstance(tracking, dict):
            return _to_float(tracking.get("score"))
        return None

    def normalize_item(self, raw: Dict[str, Any], source: str = "search",
                       assume_available: bool = False) -> Item:
        """
        Normalize one raw listing.

        Args:
            raw: Listing JSON object from any feed
            source: Feed the listing came from
            assume_available: Treat missing availability flags as buyable

        Raises:
            UpstreamShapeError: When the listing has no usable id
        """
        if not isinstance(raw, dict):
            raise UpstreamShapeError(f"Listing is not an object: {type(raw).__name__}")

        try:
            item_id = int(raw["id"])
        except (KeyError, TypeError, ValueError):
            raise UpstreamShapeError(f"Listing has no usable id: {raw.get('id')!r}")
        if item_id <= 0:
            raise UpstreamShapeError(f"Listing id must be positive: {item_id}")

        amount, currency, total_amount = self._parse_price(raw)
        seller_login, seller_is_business = self._parse_seller(raw)
        can_buy, is_reserved = self._parse_availability(raw, assume_available)

        item_box = raw.get("item_box") if isinstance(raw.get("item_box"), dict) else {}
        condition = item_box.get("second_line") or raw.get("status") or raw.get("condition")

        return Item(
            id=item_id,
            title=str(raw.get("title") or "").strip(),
            description=raw.get("description") or None,
            price_amount=amount,
            price_currency=currency,
            total_price_amount=total_amount,
            condition=condition,
            can_buy=can_buy,
            is_reserved=is_reserved,
            brand=raw.get("brand_title") or raw.get("brand") or None,
            size_label=raw.get("size_title") or raw.get("size") or None,
            seller_login=seller_login,
            seller_is_business=seller_is_business,
            favourite_count=max(0, _to_int(raw.get("favourite_count"))),
            view_count=max(0, _to_int(raw.get("view_count"))),
            added_since=_parse_timestamp(raw),
            photos=_parse_photos(raw),
            url=self.build_url(raw, item_id),
            search_score=self._parse_search_score(raw),
            source=source,
        )

    def normalize_items(self, raw_items: List[Any], source: str = "search",
                        assume_available: bool = False) -> List[Item]:
        """Normalize a page of listings, skipping malformed ones."""
        items = []
        for raw in raw_items:
            try:
                items.append(self.normalize_item(raw, source, assume_available))
            except UpstreamShapeError as e:
                logger.warning(f"Skipping malformed listing: {e}")
            except (TypeError, ValueError, AttributeError) as e:
                get_error_tracker().record_exception(
                    "item.normalizer", e, {"source": source, "item_id": _raw_id(raw)}
                )
                logger.warning(f"Skipping listing that failed to normalize: {type(e).__name__}: {e}")
        return items


def extract_raw_items(payload: Any, source: str) -> List[Any]:
    """
    Locate the raw listing array of a response.

    Raises:
        UpstreamShapeError: When the payload matches no known shape
    """
    if not isinstance(payload, dict):
        raise UpstreamShapeError(f"Response is not an object: {type(payload).__name__}")

    if source == "promoted":
        closets = payload.get("promoted_closets")
        if not isinstance(closets, list):
            raise UpstreamShapeError("Response has no 'promoted_closets' array")
        raw_items: List[Any] = []
        for closet in closets:
            if isinstance(closet, dict) and isinstance(closet.get("items"), list):
                raw_items.extend(closet["items"])
        return raw_items

    if source == "homepage":
        blocks = payload.get("blocks")
        if isinstance(blocks, list):
            return [
                block["entity"]
                for block in blocks
                if isinstance(block, dict) and block.get("type") == "item" and block.get("entity")
            ]
        if isinstance(payload.get("items"), list):
            return payload["items"]
        raise UpstreamShapeError("Response has no 'blocks' array")

    items = payload.get("items")
    if not isinstance(items, list):
        raise UpstreamShapeError("Response has no 'items' array")
    return items
