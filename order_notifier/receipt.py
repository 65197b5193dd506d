"""
Receipt rendering for accepted orders.

Everything in this module is pure: the clock and the fee are passed in, so
the output can be checked against literal strings.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from order_notifier.schemas import CartItem, OrderRequest
from order_notifier.utils import format_money, to_money

CASH_PAYMENT_METHODS = {"dinheiro", "cash"}

SEPARATOR = "=" * 32
DIVIDER = "-" * 32


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal


def is_cash(payment_method: str) -> bool:
    return payment_method.strip().lower() in CASH_PAYMENT_METHODS


def compute_totals(cart: Iterable[CartItem], delivery_fee: Decimal) -> OrderTotals:
    subtotal = sum((to_money(item.price) * item.quantity for item in cart), Decimal("0"))
    fee = to_money(delivery_fee)
    return OrderTotals(subtotal=to_money(subtotal), delivery_fee=fee, total=to_money(subtotal + fee))


def render_receipt(
    order: OrderRequest,
    now: datetime,
    business_name: str,
    delivery_fee: Decimal,
) -> str:
    """
    Render the receipt sent to the customer right after the order is stored.

    Args:
        order: Validated order request
        now: Timestamp already converted to the business timezone
        business_name: Header title
        delivery_fee: Flat fee added to the subtotal
    """
    customer = order.customer
    totals = compute_totals(order.cart, delivery_fee)

    lines = [
        SEPARATOR,
        f"{business_name} - {now:%d/%m/%Y %H:%M}",
        SEPARATOR,
        "👤 *CLIENTE*",
        f"Nome: {customer.name}",
        f"Fone: {customer.phone}",
        "",
        "*ITENS DO PEDIDO:*",
    ]
    for item in order.cart:
        line_total = to_money(item.price) * item.quantity
        lines.append(f"• {item.quantity}x {item.name} - R$ {format_money(line_total)}")
        if item.observation:
            lines.append(f"  Obs: {item.observation}")

    lines += [
        DIVIDER,
        f"Subtotal: R$ {format_money(totals.subtotal)}",
        f"Taxa Entrega: R$ {format_money(totals.delivery_fee)}",
        f"*TOTAL: R$ {format_money(totals.total)}*",
        DIVIDER,
        "*ENDEREÇO DE ENTREGA:*",
        customer.address,
    ]
    if customer.reference:
        lines.append(f"Ref: {customer.reference}")

    lines += [DIVIDER, "*PAGAMENTO:*", order.payment_method]
    if is_cash(order.payment_method) and order.cash_tendered is not None:
        change = order.cash_tendered - totals.total
        lines.append(
            f"Troco para: R$ {format_money(order.cash_tendered)} (Levar R$ {format_money(change)})"
        )

    lines += [SEPARATOR, "Obrigado pela preferência!"]
    return "\n".join(lines)
