import hashlib
import string
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from thriftverse.domain.models import PaymentMethod, ShippingOption

CENT = Decimal("0.01")

# NPR, quoted to the buyer at checkout
SHIPPING_FEES = {
    ShippingOption.HOME: Decimal("170"),
    ShippingOption.BRANCH: Decimal("120"),
    ShippingOption.NONE: Decimal("0"),
}

SELLER_SHARE = Decimal("0.95")
GATEWAY_PLATFORM_RATE = Decimal("0.03")
COD_PLATFORM_RATE = Decimal("0.05")

_BASE36 = string.digits + string.ascii_uppercase


def shipping_fee_for(option: Optional[ShippingOption]) -> Decimal:
    if option is None:
        return SHIPPING_FEES[ShippingOption.NONE]
    return SHIPPING_FEES[ShippingOption(option)]


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    """Render an amount the way it is sent to a gateway: no trailing .00 for whole rupees."""
    value = money(value)
    if value == value.to_integral_value():
        return str(value.quantize(Decimal("1")))
    return str(value)


def parse_amount(raw: str) -> Decimal:
    return money(str(raw).replace(",", "").strip())


def compute_earnings(product_cost: Decimal, payment_method: PaymentMethod) -> tuple[Decimal, Decimal]:
    """Return (sellers_earning, platform_earnings) for a product cost.

    The seller share is fixed while the platform rate depends on the payment
    method, so the two do not always add up to the product cost.
    """
    rate = GATEWAY_PLATFORM_RATE if payment_method.is_gateway else COD_PLATFORM_RATE
    return money(product_cost * SELLER_SHARE), money(product_cost * rate)


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_order_code(transaction_id: str, on: date) -> str:
    """Human readable order code, e.g. TV-251101-A4K"""
    seed = transaction_id.replace("-", "")[:6]
    try:
        number = int(seed, 16)
    except ValueError:
        number = int(hashlib.sha256(transaction_id.encode()).hexdigest()[:6], 16)
    code = _to_base36(number)[:3].rjust(3, "0")
    return f"TV-{on.strftime('%y%m%d')}-{code}"
