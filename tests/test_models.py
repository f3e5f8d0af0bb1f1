"""Tests for data models and view state."""

from decimal import Decimal

import pytest

from storefront.models import (
    Order,
    OrderStatus,
    Product,
    format_money,
    round_money,
    to_decimal,
)
from storefront.views import AppState, Page

from .conftest import make_principal


class TestMoney:
    @pytest.mark.parametrize(
        "value,expected",
        [("19.99", Decimal("19.99")), (19.99, Decimal("19.99")), (5, Decimal("5"))],
    )
    def test_to_decimal(self, value, expected):
        assert to_decimal(value) == expected

    @pytest.mark.parametrize("value", ["abc", None, "NaN", "Infinity", True])
    def test_to_decimal_rejects_non_numbers(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)

    def test_rounding_is_half_up(self):
        assert round_money(Decimal("0.125")) == Decimal("0.13")
        assert round_money(Decimal("2.675")) == Decimal("2.68")
        assert format_money(Decimal("25")) == "25.00"


class TestProduct:
    def test_from_document_defaults(self):
        product = Product.from_document("p1", {"name": "Lamp", "price": "10.5"})

        assert product.price == Decimal("10.5")
        assert product.description == ""
        assert product.image_url is None
        assert product.stock == 0

    @pytest.mark.parametrize(
        "fields",
        [
            {"name": "Lamp", "price": "-0.01"},
            {"name": "Lamp", "price": "1.00", "stock": -1},
            {"name": "Lamp", "price": "1.00", "stock": 2.5},
        ],
    )
    def test_from_document_rejects_negative_or_fractional_values(self, fields):
        with pytest.raises(ValueError):
            Product.from_document("p1", fields)

    def test_document_fields(self):
        product = Product.from_document(
            "p1", {"name": "Lamp", "price": "10.50", "imageUrl": "u", "stock": 4}
        )

        assert product.to_dict() == {
            "id": "p1",
            "name": "Lamp",
            "description": "",
            "price": "10.50",
            "stock": 4,
            "imageUrl": "u",
        }


class TestOrder:
    def test_document_round_trip_keeps_line_snapshots(self):
        fields = {
            "userId": "u1",
            "items": [{"productId": "p1", "name": "Lamp", "price": "10.00", "quantity": 2}],
            "totalAmount": "20.00",
            "timestamp": "2024-01-01T00:00:00Z",
            "status": "shipped",
        }
        order = Order.from_document("o1", fields)

        assert order.id == "o1"
        assert order.status == OrderStatus.SHIPPED
        assert order.items[0].price == Decimal("10.00")
        assert order.to_fields() == fields

    def test_new_order_defaults(self):
        order = Order(user_id="u1", items=(), total_amount=Decimal("0"))

        assert order.status == OrderStatus.PENDING
        assert order.timestamp.endswith("Z")
        assert order.id is None


class TestAppState:
    def test_starts_loading_on_home(self):
        state = AppState()

        assert state.page == Page.HOME
        assert state.loading

    def test_selected_product_only_on_detail_page(self):
        state = AppState()
        state.navigate(Page.PRODUCT_DETAIL, "p1")
        assert state.selected_product_id == "p1"

        state.navigate(Page.CART, "p1")
        assert state.selected_product_id is None

    def test_advisory_replaced_and_dismissed(self):
        state = AppState()
        state.advise("first")
        state.advise("second")
        assert state.advisory == "second"

        state.dismiss_advisory()
        assert state.advisory is None

    def test_signed_in_principal_leaves_register_page(self):
        state = AppState()
        state.navigate(Page.REGISTER)
        state.on_principal_changed(make_principal(email="ann@example.com"))

        assert state.page == Page.HOME

    def test_signed_out_principal_stays_on_page(self):
        state = AppState()
        state.navigate(Page.LOGIN)
        state.on_principal_changed(None)

        assert state.page == Page.LOGIN
