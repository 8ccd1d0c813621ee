"""CSV export of a group's members, expenses, payments and balances."""

import csv
from datetime import datetime
from decimal import Decimal
from typing import TextIO

from .currency import from_minor_units
from .exceptions import CurrencyError
from .models import BalanceReport, GroupSnapshot


def _major(amount: int, currency: str) -> Decimal | int:
    try:
        return from_minor_units(amount, currency)
    except CurrencyError:
        # Unknown precision, keep the stored minor units
        return amount


def balance_status(amount: int) -> str:
    if amount > 0:
        return "is owed"
    if amount < 0:
        return "owes"
    return "settled"


def write_group_csv(
    snapshot: GroupSnapshot,
    report: BalanceReport,
    f: TextIO,
    generated_at: datetime | None = None,
):
    """
    Write a group export as one CSV file with a section per table.

    Amounts are written in major units of their own currency (``12.50`` for
    USD, ``150000`` for VND); balances are in the report's currency.

    Layout:
        Group export - <name>
        Generated / Currency lines, then the GROUP MEMBERS, EXPENSES,
        PAYMENTS and BALANCES sections, each with its own header row and
        separated by a blank row.
    """
    writer = csv.writer(f)
    group = snapshot.group

    writer.writerow([f"Group export - {group.name or group.id}"])
    writer.writerow([f"Generated: {(generated_at or datetime.now()).isoformat()}"])
    writer.writerow([f"Currency: {report.currency}"])
    writer.writerow([])

    writer.writerow(["GROUP MEMBERS"])
    writer.writerow(["ID", "Name", "Email"])
    for member in snapshot.members:
        writer.writerow([member.id, member.display_name, member.email])
    writer.writerow([])

    writer.writerow(["EXPENSES"])
    writer.writerow(
        ["Date", "Description", "Amount", "Currency", "Payer", "Split", "Participants"]
    )
    for expense in snapshot.expenses:
        participants = ";".join(
            f"{snapshot.display_name(share.member_id)}="
            f"{_major(share.share_amount, expense.currency)}"
            for share in expense.participants
        )
        writer.writerow(
            [
                expense.date.isoformat(),
                expense.description,
                _major(expense.amount, expense.currency),
                expense.currency,
                snapshot.display_name(expense.payer_id),
                expense.split_method,
                participants,
            ]
        )
    writer.writerow([])

    writer.writerow(["PAYMENTS"])
    writer.writerow(["Date", "Payer", "Recipient", "Amount", "Currency", "Description"])
    for payment in snapshot.payments:
        writer.writerow(
            [
                payment.date.isoformat(),
                snapshot.display_name(payment.payer_id),
                snapshot.display_name(payment.recipient_id),
                _major(payment.amount, payment.currency),
                payment.currency,
                payment.description,
            ]
        )
    writer.writerow([])

    writer.writerow(["BALANCES"])
    writer.writerow(["Member", "Balance", "Currency", "Status"])
    for member_id, amount in report.balances.items():
        writer.writerow(
            [
                snapshot.display_name(member_id),
                _major(amount, report.currency),
                report.currency,
                balance_status(amount),
            ]
        )

    if report.has_mixed_currency_warning:
        excluded = report.unresolved_expense_ids + report.unresolved_payment_ids
        writer.writerow([])
        writer.writerow([f"Excluded (no exchange rate): {';'.join(excluded)}"])
