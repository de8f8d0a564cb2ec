"""
Reimbursement calculator.

Pure functions over :class:`decimal.Decimal`.  A consultation with a
generalist is reimbursed in full, one with a specialist at 80 %.  All
amounts are rounded to the cent, half-up.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from insurance.exceptions import InvalidArgument

Number = Union[Decimal, int, float, str]

GENERALIST_RATE = Decimal('1.00')
SPECIALIST_RATE = Decimal('0.80')

CENT = Decimal('0.01')
RATIO_PLACES = Decimal('0.0001')
HUNDRED = Decimal('100')
ZERO = Decimal('0.00')
TOLERANCE = Decimal('0.01')


def to_decimal(value: Optional[Number]) -> Optional[Decimal]:
    """Convert ``value`` to ``Decimal``; floats go through ``str`` so 0.1 stays 0.1."""
    if value is None or isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidArgument('amount must be a number')
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise InvalidArgument(f'{value!r} is not a valid amount')


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def rate_for(is_generalist: bool) -> Decimal:
    return GENERALIST_RATE if is_generalist else SPECIALIST_RATE


def calculate(cost: Optional[Number], is_generalist: bool) -> Decimal:
    """Amount reimbursed for a consultation of ``cost`` with a doctor of the given category."""
    cost = to_decimal(cost)
    if cost is None:
        raise InvalidArgument('cost is required')
    if cost < 0:
        raise InvalidArgument('cost cannot be negative')
    return money(cost * rate_for(is_generalist))


def calculate_with_rate(cost: Optional[Number], rate: Optional[Number]) -> Decimal:
    cost = to_decimal(cost)
    rate = to_decimal(rate)
    if cost is None:
        raise InvalidArgument('cost is required')
    if cost < 0:
        raise InvalidArgument('cost cannot be negative')
    if rate is None:
        raise InvalidArgument('rate is required')
    if rate < 0 or rate > 1:
        raise InvalidArgument('rate must be between 0 and 1')
    return money(cost * rate)


def percentage(reimbursed: Optional[Number], cost: Optional[Number]) -> Decimal:
    """Share of ``cost`` covered by ``reimbursed``, in percent.

    The ratio is rounded to 4 places before scaling, so the result
    always has at most 2 significant decimals.
    """
    reimbursed = to_decimal(reimbursed)
    cost = to_decimal(cost)
    if cost is None or cost == 0 or reimbursed is None:
        return ZERO
    ratio = (reimbursed / cost).quantize(RATIO_PLACES, rounding=ROUND_HALF_UP)
    return money(ratio * HUNDRED)


def out_of_pocket(cost: Optional[Number], reimbursed: Optional[Number]) -> Decimal:
    cost = to_decimal(cost)
    reimbursed = to_decimal(reimbursed)
    if cost is None or reimbursed is None:
        return ZERO
    return money(max(cost - reimbursed, Decimal('0')))


def verify(reimbursed: Optional[Number], cost: Optional[Number], is_generalist: bool) -> bool:
    """True when ``reimbursed`` matches the expected amount to within a cent."""
    reimbursed = to_decimal(reimbursed)
    cost = to_decimal(cost)
    if reimbursed is None or cost is None or cost < 0:
        return False
    expected = calculate(cost, is_generalist)
    return abs(reimbursed - expected) < TOLERANCE


def specialist_savings(total_specialist_cost: Optional[Number]) -> Decimal:
    """Part of a specialist cost left to the insured (cost minus the reimbursed share)."""
    total = to_decimal(total_specialist_cost)
    if total is None or total < 0:
        return ZERO
    return money(total - total * SPECIALIST_RATE)


def format_amount(amount: Optional[Number]) -> str:
    value = to_decimal(amount)
    return f"{money(value if value is not None else ZERO)} €"


def format_percentage(value: Optional[Number]) -> str:
    value = to_decimal(value)
    return f"{money(value if value is not None else ZERO)} %"
