"""
Order -> Shiprocket adhoc order payload.

Money is computed with Decimal and rounded half-up to paise, then emitted as
float because the carrier expects JSON numbers.
"""
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, List, Optional

from app.core.utils import IST, utcnow

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")

# Per-item physical dimensions are not tracked; these stand in until packing
# staff record the real parcel on the order
DEFAULT_LENGTH_CM = 12
DEFAULT_BREADTH_CM = 10
DEFAULT_HEIGHT_CM = 4
MIN_WEIGHT_KG = 0.25
WEIGHT_PER_UNIT_KG = 0.25

BILLING_COUNTRY = "India"
FALLBACK_EMAIL = "no-reply@example.com"
FALLBACK_FIRST_NAME = "Customer"
FALLBACK_ITEM_NAME = "Item"

ORDER_DATE_FORMAT = "%Y-%m-%d %H:%M"

_NON_DIGITS = re.compile(r"\D+")


def _to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")
    return number if number.is_finite() else Decimal("0")


def to_money(value: Any) -> Decimal:
    return _to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def digits_only(value: Any) -> str:
    return _NON_DIGITS.sub("", str(value if value is not None else ""))


def normalize_phone(value: Any) -> str:
    """Keep the 10-digit subscriber number: "+91 98765-43210" -> "9876543210"."""
    digits = digits_only(value)
    if len(digits) == 12 and digits.startswith("91"):
        digits = digits[2:]
    return digits[-10:]


def normalize_pincode(value: Any) -> str:
    return digits_only(value)


def split_name(full_name: Any):
    """Split on the first whitespace boundary; blank names become "Customer"."""
    parts = str(full_name or "").split(None, 1)
    if not parts:
        return FALLBACK_FIRST_NAME, ""
    first = parts[0]
    last = " ".join(parts[1].split()) if len(parts) > 1 else ""
    return first, last


def format_order_date(moment: Optional[datetime]) -> str:
    """Carrier wants IST wall-clock time as YYYY-MM-DD HH:mm."""
    if moment is None:
        moment = utcnow()
    if moment.tzinfo is None:
        # Naive timestamps from the DB are UTC
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(IST).strftime(ORDER_DATE_FORMAT)


def is_cod(payment_method: Any) -> bool:
    return str(payment_method or "").strip().lower() == "cod"


def _package_value(package: Dict[str, Any], key: str) -> Optional[float]:
    value = _to_decimal(package.get(key))
    if value > 0:
        return float(value)
    return None


def map_order_item(item: Any) -> Dict[str, Any]:
    price = to_money(getattr(item, "price", 0))
    product_id = getattr(item, "product_id", None)
    sku = str(getattr(item, "product_sku", None) or "").strip()
    if not sku:
        sku = f"SKU-{product_id if product_id not in (None, '') else 'N/A'}"

    return {
        "name": getattr(item, "product_name", None) or FALLBACK_ITEM_NAME,
        "sku": sku,
        "units": int(getattr(item, "quantity", 0) or 0),
        # Carrier rejects zero-price lines
        "selling_price": float(max(Decimal("1"), price)),
        "discount": 0,
        "tax": 0,
    }


def compute_sub_total(items: List[Any]) -> Decimal:
    """Always recomputed from the lines; a stored subtotal may be stale."""
    total = sum(
        (_to_decimal(getattr(item, "price", 0)) * int(getattr(item, "quantity", 0) or 0) for item in items),
        Decimal("0"),
    )
    return total.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def map_order_to_payload(
    order: Any,
    pickup_location: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Build the /orders/create/adhoc body for an order.

    Args:
        order: Order with items loaded
        pickup_location: Pickup address nickname configured in the Shiprocket panel
        now: Used for order_date when the order has no created_at

    Returns:
        Payload dict; run validate_payload() on it before sending
    """
    items = list(getattr(order, "items", None) or [])
    address = getattr(order, "shipping_address", None) or {}
    package = getattr(order, "shipping_package", None) or {}

    sub_total = compute_sub_total(items)
    tax = to_money(getattr(order, "tax", 0))
    shipping = to_money(getattr(order, "shipping_cost", 0))
    stored_total = to_money(getattr(order, "total", None))
    total = stored_total if stored_total > 0 else sub_total + tax + shipping

    cod = is_cod(getattr(order, "payment_method", None))
    total_units = sum(int(getattr(item, "quantity", 0) or 0) for item in items)

    first_name, last_name = split_name(address.get("full_name"))
    street = [
        str(address.get(key) or "").strip()
        for key in ("address_line1", "address_line2")
    ]
    email = str(address.get("email") or "").strip() or FALLBACK_EMAIL

    order_number = getattr(order, "order_number", None)
    created_at = getattr(order, "created_at", None) or now

    payload = {
        "order_id": str(order_number or getattr(order, "id", "")),
        "order_date": format_order_date(created_at),
        "pickup_location": pickup_location,
        "billing_customer_name": first_name,
        "billing_last_name": last_name,
        "billing_address": ", ".join(part for part in street if part),
        "billing_city": str(address.get("city") or "").strip(),
        "billing_pincode": normalize_pincode(address.get("pincode")),
        "billing_state": str(address.get("state") or "").strip(),
        "billing_country": BILLING_COUNTRY,
        "billing_email": email,
        "billing_phone": normalize_phone(address.get("phone_number")),
        "shipping_is_billing": True,
        "order_items": [map_order_item(item) for item in items],
        "payment_method": "COD" if cod else "Prepaid",
        "shipping_charges": float(shipping),
        "sub_total": float(sub_total),
        "declared_value": float(total),
        "collectable_amount": float(total) if cod else 0.0,
        "length": _package_value(package, "length_cm") or DEFAULT_LENGTH_CM,
        "breadth": _package_value(package, "breadth_cm") or DEFAULT_BREADTH_CM,
        "height": _package_value(package, "height_cm") or DEFAULT_HEIGHT_CM,
        "weight": _package_value(package, "weight_kg") or max(MIN_WEIGHT_KG, WEIGHT_PER_UNIT_KG * total_units),
    }

    logger.debug(
        f"[SHIPROCKET] Mapped order {payload['order_id']}: {len(items)} lines, "
        f"sub_total={payload['sub_total']} declared={payload['declared_value']} {payload['payment_method']}"
    )
    return payload
