# poolcrm/money.py
"""Currency helpers.

Every monetary amount is stored and computed in integer cents.  Conversions
go through ``Decimal`` with half-up rounding so that no float ever touches a
stored value.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CURRENCY_SYMBOL = '$'
MAX_CENTS = 2**53 - 1

_CURRENCY_RE = re.compile(
    r'^\$?\s*(?P<whole>\d{1,3}(?:,\d{3})+|\d*)(?:\.(?P<frac>\d{0,2}))?$',
    re.ASCII,
)


def to_decimal(value) -> Decimal:
    """Coerce ints, floats, strings and Decimals into an exact Decimal.

    Floats go through ``str`` so that ``0.07`` becomes ``Decimal('0.07')``
    rather than its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_half_up(value) -> int:
    return int(to_decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def dollars_to_cents(dollars) -> int:
    return round_half_up(to_decimal(dollars) * 100)


def cents_to_dollars(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal('0.01'))


def parse_currency_to_cents(text: str) -> int | None:
    """Parse ``"$1,234.56"``, ``"12.5"`` or ``"12"`` into cents.

    Returns ``None`` for anything malformed (empty, non-numeric, negative,
    more than two decimals, bad thousands grouping); callers keep their
    current value in that case.
    """
    if text is None:
        return None
    match = _CURRENCY_RE.match(str(text).strip())
    if not match:
        return None
    whole = match.group('whole').replace(',', '')
    frac = match.group('frac') or ''
    if not whole and not frac:
        return None
    return int(whole or '0') * 100 + int(frac.ljust(2, '0'))


def format_currency(cents: int) -> str:
    """Render cents as ``$1,234.56`` (``-$1.00`` for negative amounts)."""
    sign = '-' if cents < 0 else ''
    dollars, rem = divmod(abs(int(cents)), 100)
    return f'{sign}{CURRENCY_SYMBOL}{dollars:,}.{rem:02d}'


def format_cents_compact(cents: int) -> str:
    dollars = Decimal(cents) / 100
    if dollars >= 1_000_000:
        return f'{CURRENCY_SYMBOL}{(dollars / 1_000_000).quantize(Decimal("0.1"), ROUND_HALF_UP)}M'
    if dollars >= 1_000:
        return f'{CURRENCY_SYMBOL}{(dollars / 1_000).quantize(Decimal("0.1"), ROUND_HALF_UP)}K'
    return format_currency(cents)


def calculate_tax(subtotal_cents: int, tax_rate) -> int:
    return round_half_up(Decimal(subtotal_cents) * to_decimal(tax_rate))


def format_tax_rate(rate) -> str:
    """``0.07`` -> ``"7%"``, ``0.0725`` -> ``"7.25%"``."""
    pct = to_decimal(rate) * 100
    if pct == pct.to_integral_value():
        return f'{int(pct)}%'
    return f'{pct.quantize(Decimal("0.01"), ROUND_HALF_UP)}%'


def parse_tax_rate(text: str) -> Decimal | None:
    """Parse ``"7%"``, ``"7.5"`` or ``"0.07"`` into a fractional rate.

    Values above 1 are read as percentages.
    """
    cleaned = (text or '').replace('%', '').strip()
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite() or value < 0:
        return None
    return value / 100 if value > 1 else value


def is_valid_cents_amount(cents) -> bool:
    return isinstance(cents, int) and not isinstance(cents, bool) and 0 <= cents <= MAX_CENTS


def is_valid_tax_rate(rate) -> bool:
    try:
        value = to_decimal(rate)
    except (InvalidOperation, TypeError, ValueError):
        return False
    return value.is_finite() and 0 <= value <= 1
