"""
Utility functions for the order service.
"""

import hmac
import hashlib
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def verify_hmac_signature(body: bytes, signature: str, secret: str) -> bool:
    """
    Verify HMAC-SHA256 signature of a session event sent by the gateway.

    Args:
        body: Raw request body bytes
        signature: Hex-encoded signature from X-Signature header
        secret: WEBHOOK_SECRET

    Returns:
        True if signature is valid, False otherwise
    """
    logger.debug(f"Verifying HMAC signature, body length: {len(body)} bytes")

    expected_signature = hmac.new(
        secret.encode("utf-8"),
        body,
        hashlib.sha256
    ).hexdigest()

    # Use constant-time comparison to prevent timing attacks
    is_valid = hmac.compare_digest(expected_signature, signature)
    logger.info(f"HMAC signature verification: {'valid' if is_valid else 'invalid'}")

    return is_valid


def to_money(value) -> Decimal:
    """Quantize to cents, rounding half up."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def format_money(value) -> str:
    """Two decimals, comma as the decimal separator."""
    return f"{to_money(value):.2f}".replace(".", ",")


def parse_amount(raw) -> Optional[Decimal]:
    """
    Parse a currency amount typed by a customer.

    Accepts "25,00", "1.234,56", "R$ 25,00", "25.00" or a number. Blank
    input means no amount. Raises ValueError for anything else.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float, Decimal)):
        value = raw
    else:
        value = str(raw).replace("R$", "").strip()
        if not value:
            return None
        if "," in value:
            value = value.replace(".", "").replace(",", ".")

    # NaN quantizes silently; infinities and huge exponents raise
    try:
        amount = to_money(value)
    except InvalidOperation:
        raise ValueError(f"invalid amount: {raw!r}") from None
    if not amount.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    return amount
