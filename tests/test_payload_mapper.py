"""
map_order_to_payload: money, normalization and package defaults.
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.models import OrderItem
from app.modules.shipping.payload import (
    format_order_date,
    map_order_to_payload,
    normalize_phone,
    normalize_pincode,
    split_name,
)

PICKUP = "Sales Office"


def item(price, quantity, sku="SKU-X", product_id=1, name="Widget"):
    return OrderItem(product_id=product_id, product_name=name, product_sku=sku, price=Decimal(str(price)), quantity=quantity)


class TestMoney:
    def test_cod_example(self, order_factory):
        """items [{price:100, qty:2}], no tax/shipping, cod."""
        order = order_factory(items=[item(100, 2)], payment_method="cod")
        payload = map_order_to_payload(order, PICKUP)

        assert payload["sub_total"] == 200.00
        assert payload["declared_value"] == 200.00
        assert payload["collectable_amount"] == 200.00
        assert payload["payment_method"] == "COD"

    def test_prepaid_collects_nothing(self, order_factory):
        order = order_factory(items=[item(100, 2)], payment_method="razorpay")
        payload = map_order_to_payload(order, PICKUP)

        assert payload["payment_method"] == "Prepaid"
        assert payload["collectable_amount"] == 0
        assert payload["declared_value"] == 200.00

    def test_payment_method_is_case_insensitive(self, order_factory):
        order = order_factory(payment_method="COD")
        assert map_order_to_payload(order, PICKUP)["payment_method"] == "COD"

    def test_sub_total_ignores_stale_stored_subtotal(self, order_factory):
        order = order_factory(items=[item("19.99", 3)])
        order.subtotal = Decimal("5.00")

        assert map_order_to_payload(order, PICKUP)["sub_total"] == 59.97

    def test_sub_total_rounds_half_up(self, order_factory):
        order = order_factory(items=[item("0.125", 1), item("0.5", 1)], total=Decimal("0"))
        assert map_order_to_payload(order, PICKUP)["sub_total"] == 0.63

    def test_stored_total_wins_when_positive(self, order_factory):
        order = order_factory(items=[item(100, 1)], tax=18, shipping_cost=40, total=Decimal("150.00"))
        assert map_order_to_payload(order, PICKUP)["declared_value"] == 150.00

    def test_total_recomputed_when_stored_total_missing(self, order_factory):
        order = order_factory(items=[item(100, 1)], tax=18, shipping_cost=40, total=Decimal("0"), payment_method="cod")
        payload = map_order_to_payload(order, PICKUP)

        assert payload["declared_value"] == 158.00
        assert payload["collectable_amount"] == 158.00
        assert payload["shipping_charges"] == 40.00

    def test_selling_price_floored_but_sub_total_not(self, order_factory):
        order = order_factory(items=[item("0.40", 2)], total=Decimal("0"))
        payload = map_order_to_payload(order, PICKUP)

        assert payload["order_items"][0]["selling_price"] == 1.0
        assert payload["sub_total"] == 0.80


class TestItems:
    def test_missing_sku_uses_product_id(self, order_factory):
        order = order_factory(items=[item(10, 1, sku=None, product_id=55)])
        assert map_order_to_payload(order, PICKUP)["order_items"][0]["sku"] == "SKU-55"

    def test_missing_sku_and_product_id(self, order_factory):
        order = order_factory(items=[item(10, 1, sku="  ", product_id=None)])
        assert map_order_to_payload(order, PICKUP)["order_items"][0]["sku"] == "SKU-N/A"

    def test_item_shape(self, order_factory):
        order = order_factory(items=[item(250, 3, sku="TEE-1", name="Tee")])
        assert map_order_to_payload(order, PICKUP)["order_items"] == [
            {"name": "Tee", "sku": "TEE-1", "units": 3, "selling_price": 250.0, "discount": 0, "tax": 0}
        ]


class TestPackage:
    def test_defaults_scale_weight_with_units(self, order_factory):
        order = order_factory(items=[item(10, 3), item(10, 2)])
        payload = map_order_to_payload(order, PICKUP)

        assert (payload["length"], payload["breadth"], payload["height"]) == (12, 10, 4)
        assert payload["weight"] == 1.25

    def test_minimum_weight(self, order_factory):
        order = order_factory(items=[item(10, 1)])
        assert map_order_to_payload(order, PICKUP)["weight"] == 0.25

    def test_measured_package_overrides_placeholders(self, order_factory):
        order = order_factory(shipping_package={"length_cm": 30, "breadth_cm": 20, "height_cm": 0, "weight_kg": "1.8"})
        payload = map_order_to_payload(order, PICKUP)

        assert payload["length"] == 30.0
        assert payload["breadth"] == 20.0
        assert payload["height"] == 4
        assert payload["weight"] == 1.8


class TestAddress:
    def test_billing_block(self, order_factory, sample_address):
        order = order_factory(shipping_address=sample_address)
        payload = map_order_to_payload(order, PICKUP)

        assert payload["billing_customer_name"] == "Asha"
        assert payload["billing_last_name"] == "Rao Kulkarni"
        assert payload["billing_address"] == "12 MG Road, Flat 4B"
        assert payload["billing_city"] == "Mumbai"
        assert payload["billing_state"] == "Maharashtra"
        assert payload["billing_country"] == "India"
        assert payload["billing_pincode"] == "400001"
        assert payload["billing_phone"] == "9876543210"
        assert payload["shipping_is_billing"] is True
        assert payload["pickup_location"] == PICKUP

    def test_blank_email_falls_back(self, order_factory, sample_address):
        sample_address["email"] = "  "
        order = order_factory(shipping_address=sample_address)
        assert map_order_to_payload(order, PICKUP)["billing_email"] == "no-reply@example.com"

    def test_order_id_prefers_order_number(self, order_factory):
        assert map_order_to_payload(order_factory(order_number="ORD-9"), PICKUP)["order_id"] == "ORD-9"
        assert map_order_to_payload(order_factory(order_number=None, id=77), PICKUP)["order_id"] == "77"

    def test_order_date_in_ist(self, order_factory):
        order = order_factory(created_at=datetime(2024, 3, 1, 20, 45, tzinfo=timezone.utc))
        assert map_order_to_payload(order, PICKUP)["order_date"] == "2024-03-02 02:15"


class TestNormalizers:
    @pytest.mark.parametrize("raw,expected", [
        ("+91 98765-43210", "9876543210"),
        ("919876543210", "9876543210"),
        ("09876543210", "9876543210"),
        ("98765 43210", "9876543210"),
    ])
    def test_phone(self, raw, expected):
        assert normalize_phone(raw) == expected

    def test_pincode(self):
        assert normalize_pincode("400 001") == "400001"

    def test_split_name_blank(self):
        assert split_name("   ") == ("Customer", "")

    def test_split_name_single(self):
        assert split_name("Madonna") == ("Madonna", "")

    def test_naive_datetime_treated_as_utc(self):
        assert format_order_date(datetime(2024, 1, 1, 0, 0)) == "2024-01-01 05:30"
