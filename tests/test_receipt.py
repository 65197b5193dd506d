"""
Tests for receipt rendering and money helpers.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from order_notifier.receipt import compute_totals, render_receipt
from order_notifier.schemas import OrderRequest
from order_notifier.utils import format_money, parse_amount

NOW = datetime(2025, 1, 15, 10, 30)
FEE = Decimal("5.00")


def make_order(payment_method="Dinheiro", cash_tendered=None, cart=None, reference=None) -> OrderRequest:
    return OrderRequest.model_validate({
        "customer": {
            "phone": "(11) 98765-4321",
            "name": "Maria",
            "address": "Rua das Flores, 10",
            "reference": reference,
        },
        "cart": cart or [{"name": "X", "price": 10.00, "quantity": 2}],
        "payment_method": payment_method,
        "cash_tendered": cash_tendered,
    })


class TestMoney:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("25,00", Decimal("25.00")),
            ("R$ 30,5", Decimal("30.50")),
            ("1.234,56", Decimal("1234.56")),
            ("25.00", Decimal("25.00")),
            (30, Decimal("30.00")),
            (12.5, Decimal("12.50")),
        ],
    )
    def test_parse_amount(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_parse_amount_blank(self, raw):
        assert parse_amount(raw) is None

    @pytest.mark.parametrize(
        "raw",
        ["abc", "12,3,4", "NaN", "Infinity", "1e999", float("inf"), float("nan"), Decimal("-Infinity")],
    )
    def test_parse_amount_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_amount(raw)

    def test_format_money_uses_comma(self):
        assert format_money(Decimal("1234.5")) == "1234,50"
        assert format_money(Decimal("0")) == "0,00"
        assert format_money(Decimal("-5")) == "-5,00"


class TestComputeTotals:

    def test_subtotal_and_total(self):
        order = make_order(cart=[
            {"name": "X", "price": 10.00, "quantity": 2},
            {"name": "Suco", "price": 6.5, "quantity": 1},
        ])
        totals = compute_totals(order.cart, FEE)
        assert totals.subtotal == Decimal("26.50")
        assert totals.delivery_fee == Decimal("5.00")
        assert totals.total == Decimal("31.50")

    def test_float_prices_do_not_drift(self):
        order = make_order(cart=[{"name": "Refri", "price": 0.1, "quantity": 3}])
        assert compute_totals(order.cart, FEE).subtotal == Decimal("0.30")


class TestRenderReceipt:

    def test_exact_change(self):
        receipt = render_receipt(make_order(cash_tendered="25,00"), NOW, "Doka Burger", FEE)
        assert "*TOTAL: R$ 25,00*" in receipt
        assert "Troco para: R$ 25,00 (Levar R$ 0,00)" in receipt

    def test_change_due(self):
        receipt = render_receipt(make_order(cash_tendered="30,00"), NOW, "Doka Burger", FEE)
        assert "*TOTAL: R$ 25,00*" in receipt
        assert "Troco para: R$ 30,00 (Levar R$ 5,00)" in receipt

    def test_no_change_line_without_tendered_amount(self):
        receipt = render_receipt(make_order(), NOW, "Doka Burger", FEE)
        assert "Troco" not in receipt

    def test_no_change_line_for_card_payment(self):
        receipt = render_receipt(make_order(payment_method="Cartão", cash_tendered="50,00"), NOW, "Doka Burger", FEE)
        assert "Troco" not in receipt
        assert "*PAGAMENTO:*\nCartão" in receipt

    def test_english_cash_label(self):
        receipt = render_receipt(make_order(payment_method="cash", cash_tendered="30,00"), NOW, "Doka Burger", FEE)
        assert "(Levar R$ 5,00)" in receipt

    def test_full_layout(self):
        order = make_order(
            cash_tendered="50,00",
            reference="Portão azul",
            cart=[
                {"name": "X-Burger", "price": 18.9, "quantity": 2, "observation": "Sem cebola"},
                {"name": "Refri", "price": 6, "quantity": 1},
            ],
        )
        expected = "\n".join([
            "================================",
            "Doka Burger - 15/01/2025 10:30",
            "================================",
            "👤 *CLIENTE*",
            "Nome: Maria",
            "Fone: (11) 98765-4321",
            "",
            "*ITENS DO PEDIDO:*",
            "• 2x X-Burger - R$ 37,80",
            "  Obs: Sem cebola",
            "• 1x Refri - R$ 6,00",
            "--------------------------------",
            "Subtotal: R$ 43,80",
            "Taxa Entrega: R$ 5,00",
            "*TOTAL: R$ 48,80*",
            "--------------------------------",
            "*ENDEREÇO DE ENTREGA:*",
            "Rua das Flores, 10",
            "Ref: Portão azul",
            "--------------------------------",
            "*PAGAMENTO:*",
            "Dinheiro",
            "Troco para: R$ 50,00 (Levar R$ 1,20)",
            "================================",
            "Obrigado pela preferência!",
        ])
        assert render_receipt(order, NOW, "Doka Burger", FEE) == expected

    def test_rendering_is_pure(self):
        order = make_order(cash_tendered="30,00")
        first = render_receipt(order, NOW, "Doka Burger", FEE)
        assert render_receipt(order, NOW, "Doka Burger", FEE) == first
