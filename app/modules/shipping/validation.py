"""
Pre-flight checks for Shiprocket adhoc order payloads.

validate_payload returns every violation at once so an admin can fix the
order in one pass. Nothing is sent to the carrier unless the list is empty.
"""
import math
import re
from typing import Any, Dict, List

REQUIRED_FIELDS = (
    "order_id",
    "order_date",
    "pickup_location",
    "billing_customer_name",
    "billing_address",
    "billing_city",
    "billing_state",
    "billing_country",
    "billing_email",
    "billing_phone",
    "billing_pincode",
    "payment_method",
    "sub_total",
    "declared_value",
    "collectable_amount",
    "length",
    "breadth",
    "height",
    "weight",
)

NON_NEGATIVE_FIELDS = (
    "sub_total",
    "declared_value",
    "collectable_amount",
    "length",
    "breadth",
    "height",
    "weight",
)

PAYMENT_METHODS = ("COD", "Prepaid")

REQUIRED_ADDRESS_FIELDS = (
    "full_name",
    "phone_number",
    "email",
    "address_line1",
    "city",
    "state",
    "pincode",
)

_PINCODE = re.compile(r"^\d{6}$")
_PHONE = re.compile(r"^\d{10}$")


def _is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def _is_number(value: Any) -> bool:
    # bool is an int subclass; True is not a price
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def validate_payload(payload: Dict[str, Any]) -> List[str]:
    errors = []

    for name in REQUIRED_FIELDS:
        if _is_blank(payload.get(name)):
            errors.append(f"Missing/empty: {name}")

    if not _PINCODE.match(str(payload.get("billing_pincode") or "")):
        errors.append("Invalid billing_pincode (must be 6 digits)")
    if not _PHONE.match(str(payload.get("billing_phone") or "")):
        errors.append("Invalid billing_phone (must be 10 digits, no country code)")

    payment_method = payload.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        errors.append("Invalid payment_method (must be COD or Prepaid)")

    for name in NON_NEGATIVE_FIELDS:
        value = payload.get(name)
        if not (_is_number(value) and value >= 0):
            errors.append(f"Invalid {name} (must be a number >= 0)")

    items = payload.get("order_items")
    if not isinstance(items, list) or not items:
        errors.append("order_items must be non-empty")
    else:
        for i, item in enumerate(items):
            if not isinstance(item, dict):
                errors.append(f"order_items[{i}] must be an object")
                continue
            if _is_blank(item.get("sku")):
                errors.append(f"order_items[{i}].sku missing")
            units = item.get("units")
            if not (_is_number(units) and units > 0):
                errors.append(f"order_items[{i}].units must be > 0")
            price = item.get("selling_price")
            if not (_is_number(price) and price > 0):
                errors.append(f"order_items[{i}].selling_price must be > 0")

    collectable = payload.get("collectable_amount")
    if _is_number(collectable):
        if payment_method == "COD" and collectable <= 0:
            declared = payload.get("declared_value")
            if _is_number(declared) and declared <= 0:
                errors.append("COD order has zero value; collectable_amount must be > 0 for COD orders")
            else:
                errors.append("collectable_amount must be > 0 for COD orders")
        elif payment_method == "Prepaid" and collectable > 0:
            errors.append("collectable_amount must be 0 for Prepaid orders")

    return errors


def missing_shipping_fields(order: Any) -> List[str]:
    """Shipping address fields an order needs before it can be mapped."""
    address = getattr(order, "shipping_address", None) or {}
    return [
        f"shipping_address.{name}"
        for name in REQUIRED_ADDRESS_FIELDS
        if _is_blank(address.get(name))
    ]
