"""Balance calculation: net position of every member in a group.

For each expense the payer is credited with the full amount and every
participant is debited with their share. For each payment the payer is
credited and the recipient debited. Because both sides of every transaction
net out, the balances of a consistent group always sum to exactly zero.
"""

import logging
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Literal

from .currency import from_minor_units, normalize_currency_code, to_minor_units
from .exceptions import CurrencyError
from .models import BalanceReport, Expense, Member, Payment
from .rates import RateLookup

logger = logging.getLogger(__name__)

RateDatePolicy = Literal["transaction", "latest"]


def convert_minor_units(
    amount: int, from_currency: str, to_currency: str, rate: Decimal
) -> int:
    """
    Convert an amount between currencies, honouring each one's precision.

    Example:
        convert_minor_units(1000, "USD", "VND", Decimal("25000")) -> 250000
    """
    major = from_minor_units(amount, from_currency) * rate
    return to_minor_units(major, to_currency)


def _resolve_rate(
    from_currency: str,
    to_currency: str,
    transaction_date: date,
    rate_lookup: RateLookup | None,
    rate_date_policy: RateDatePolicy,
) -> Decimal | None:
    """Look up a usable conversion rate, or None if there is none."""
    if rate_lookup is None:
        return None

    on_date = transaction_date if rate_date_policy == "transaction" else None
    rate = rate_lookup(from_currency, to_currency, on_date)
    if rate is None or rate <= 0:
        return None
    return rate


def _convert_expense(
    expense: Expense, currency: str, rate: Decimal
) -> tuple[int, list[tuple[str, int]]]:
    """
    Convert an expense's total and shares into the group currency.

    Shares are converted independently, so rounding can leave them off the
    converted total by a few minor units. When the original shares summed to
    the original total, the residual is applied to the largest share so the
    expense still nets to zero. Inconsistent expenses are left as they are.
    """
    total = convert_minor_units(expense.amount, expense.currency, currency, rate)
    shares = [
        (
            share.member_id,
            convert_minor_units(share.share_amount, expense.currency, currency, rate),
        )
        for share in expense.participants
    ]

    if shares and expense.shares_total == expense.amount:
        residual = total - sum(amount for _, amount in shares)
        if residual != 0:
            largest_idx = max(range(len(shares)), key=lambda idx: shares[idx][1])
            member_id, amount = shares[largest_idx]
            shares[largest_idx] = (member_id, amount + residual)
            logger.debug(
                f"Applied conversion rounding adjustment of {residual} "
                f"to {member_id} in expense {expense.id}"
            )

    return total, shares


def compute_balances(
    members: Iterable[Member],
    expenses: Iterable[Expense],
    payments: Iterable[Payment],
    currency: str,
    rate_lookup: RateLookup | None = None,
    *,
    group_id: str | None = None,
    rate_date_policy: RateDatePolicy = "transaction",
) -> BalanceReport:
    """
    Compute every member's net balance in the group currency.

    The calculator trusts its input: expenses whose shares do not add up to
    their amount are not rejected or corrected, and simply leave the report's
    total non-zero.

    Args:
        members: Group members (each starts with a zero balance)
        expenses: Group expenses
        payments: Payments recorded between members
        currency: The group's default currency
        rate_lookup: Optional exchange rate lookup for foreign transactions
        group_id: Group the report belongs to
        rate_date_policy: "transaction" to convert at the transaction date,
                          "latest" to always use the latest rate

    Returns:
        Balance report; transactions that could not be converted are
        excluded and flagged with a mixed-currency warning
    """
    group_currency = normalize_currency_code(currency)
    balances: dict[str, int] = {member.id: 0 for member in members}
    known_ids = set(balances)
    unresolved_expenses: list[str] = []
    unresolved_payments: list[str] = []

    def credit(member_id: str, amount: int):
        if member_id not in known_ids:
            logger.warning(f"Transaction references unknown member {member_id}")
            known_ids.add(member_id)
        balances[member_id] = balances.get(member_id, 0) + amount

    for expense in expenses:
        if normalize_currency_code(expense.currency) == group_currency:
            total = expense.amount
            shares = [(share.member_id, share.share_amount) for share in expense.participants]
        else:
            try:
                rate = _resolve_rate(
                    expense.currency, group_currency, expense.date, rate_lookup, rate_date_policy
                )
                converted = _convert_expense(expense, group_currency, rate) if rate else None
            except CurrencyError as e:
                logger.warning(f"Cannot convert expense {expense.id}: {e}")
                converted = None

            if converted is None:
                logger.warning(
                    f"No {expense.currency}->{group_currency} rate for expense "
                    f"{expense.id}, excluding it from balances"
                )
                unresolved_expenses.append(expense.id)
                continue
            total, shares = converted

        credit(expense.payer_id, total)
        for member_id, share_amount in shares:
            credit(member_id, -share_amount)

    for payment in payments:
        amount = payment.amount
        if normalize_currency_code(payment.currency) != group_currency:
            try:
                rate = _resolve_rate(
                    payment.currency, group_currency, payment.date, rate_lookup, rate_date_policy
                )
                amount = (
                    convert_minor_units(payment.amount, payment.currency, group_currency, rate)
                    if rate
                    else None
                )
            except CurrencyError as e:
                logger.warning(f"Cannot convert payment {payment.id}: {e}")
                amount = None

            if amount is None:
                logger.warning(
                    f"No {payment.currency}->{group_currency} rate for payment "
                    f"{payment.id}, excluding it from balances"
                )
                unresolved_payments.append(payment.id)
                continue

        credit(payment.payer_id, amount)
        credit(payment.recipient_id, -amount)

    report = BalanceReport(
        group_id=group_id,
        currency=group_currency,
        balances=balances,
        has_mixed_currency_warning=bool(unresolved_expenses or unresolved_payments),
        unresolved_expense_ids=unresolved_expenses,
        unresolved_payment_ids=unresolved_payments,
    )

    if report.total != 0:
        logger.warning(
            f"Balances for group {group_id} do not sum to zero "
            f"(net {report.total}); check expense shares"
        )

    logger.info(
        f"Computed balances for {len(balances)} members "
        f"({len(unresolved_expenses) + len(unresolved_payments)} unresolved transactions)"
    )
    return report
