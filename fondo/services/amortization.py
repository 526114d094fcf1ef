"""Fixed-payment loan arithmetic for Fondo.

Amounts are whole Colombian pesos. Every rounding step uses
round-half-away-from-zero on ``Decimal`` values so results do not depend on
binary floating point.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

import pandas as pd

from fondo.data_structures import AmortizationRow
from fondo.exceptions import InvalidArgumentError, InvalidTermError


def round_money(value) -> int:
    """Round to the nearest whole peso, halves away from zero."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_whole_amount(value) -> bool:
    """True for a positive, whole number of pesos (500000 or 500000.0, not 0.4)."""
    if value is None or isinstance(value, bool):
        return False
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return False
    return amount.is_finite() and amount > 0 and amount == amount.to_integral_value()


def monthly_rate(annual_rate_percent) -> Decimal:
    """Convert an annual percent rate into a monthly decimal rate."""
    return Decimal(str(annual_rate_percent)) / Decimal(100) / Decimal(12)


def _validate(principal, annual_rate_percent, term_months):
    if term_months == 0:
        raise InvalidTermError(term_months)
    if not isinstance(term_months, int) or term_months < 1:
        raise InvalidArgumentError(f"Term must be a positive whole number of months: {term_months}",
                                   {'term': term_months})
    if principal is None or principal <= 0:
        raise InvalidArgumentError(f"Principal must be positive: {principal}", {'principal': principal})
    if annual_rate_percent is None or annual_rate_percent < 0:
        raise InvalidArgumentError(f"Rate cannot be negative: {annual_rate_percent}",
                                   {'rate': annual_rate_percent})


def monthly_payment(principal, annual_rate_percent, term_months) -> int:
    """Compute the fixed monthly installment of a loan.

    Args:
        principal: Amount borrowed (> 0).
        annual_rate_percent: Annual rate in percent (>= 0), e.g. 2 for 2%.
        term_months: Number of monthly installments (>= 1).

    Returns:
        Installment rounded to a whole peso.

    Raises:
        InvalidTermError: If term_months is 0.
        InvalidArgumentError: For any other out-of-range input.
    """
    _validate(principal, annual_rate_percent, term_months)

    p = Decimal(str(principal))
    r = monthly_rate(annual_rate_percent)
    if r == 0:
        return round_money(p / term_months)

    growth = (1 + r) ** term_months
    return round_money(p * r * growth / (growth - 1))


def amortization_schedule(principal, annual_rate_percent, term_months) -> list:
    """Build the period-by-period amortization table.

    The last period absorbs any residual rounding difference so that the
    principal portions add up to ``principal`` and the final balance is 0.
    The table is recomputed on every call.
    """
    payment = monthly_payment(principal, annual_rate_percent, term_months)
    r = monthly_rate(annual_rate_percent)

    rows = []
    remaining = round_money(str(principal))
    for period in range(1, term_months + 1):
        interest = round_money(Decimal(remaining) * r)
        if period == term_months:
            # Reconcile: whatever is left is paid off in the final period
            principal_part = remaining
            row_payment = principal_part + interest
        else:
            principal_part = min(max(payment - interest, 0), remaining)
            row_payment = payment
        remaining = max(remaining - principal_part, 0)
        rows.append(AmortizationRow(
            period=period,
            payment=row_payment,
            interest=interest,
            principal=principal_part,
            balance=remaining,
        ))
    return rows


def schedule_dataframe(rows) -> pd.DataFrame:
    """Tabulate amortization rows for display or export."""
    return pd.DataFrame(
        [(row.period, row.payment, row.interest, row.principal, row.balance) for row in rows],
        columns=["period", "payment", "interest", "principal", "balance"],
    )


def total_interest(rows) -> int:
    """Sum of the interest portions of a schedule."""
    return sum(row.interest for row in rows)
