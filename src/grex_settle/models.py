"""Pydantic domain models for grex-settle."""

import datetime as dt
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SplitMethod = Literal["equal", "percentage", "exact", "shares"]

# ============================================================================
# Group Models
# ============================================================================


class Member(BaseModel):
    """A member of an expense-sharing group."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    email: str = ""


class Group(BaseModel):
    """A group sharing expenses in a default currency."""

    id: str
    name: str = ""
    currency: str = "VND"


class ParticipantShare(BaseModel):
    """One participant's share of an expense, in minor currency units."""

    member_id: str
    share_amount: int = Field(ge=0)


class Expense(BaseModel):
    """A shared cost fronted by one member and divided among participants.

    Amounts are integers in the minor unit of ``currency`` (VND has no
    subunit, so the amount is a plain count of dong).
    """

    id: str
    group_id: str
    payer_id: str
    amount: int = Field(ge=0)
    currency: str
    description: str = ""
    date: dt.date
    participants: list[ParticipantShare] = Field(default_factory=list)
    split_method: SplitMethod = "exact"

    @property
    def shares_total(self) -> int:
        return sum(share.share_amount for share in self.participants)


class Payment(BaseModel):
    """Money that actually changed hands between two members."""

    id: str
    group_id: str
    payer_id: str
    recipient_id: str
    amount: int = Field(ge=0)
    currency: str
    description: str = ""
    date: dt.date


# ============================================================================
# Derived Models
# ============================================================================


class BalanceReport(BaseModel):
    """Net balances for a group, in the group's currency.

    Positive balances are owed to the member, negative balances are owed by
    the member. Transactions that could not be converted into the group
    currency are left out and listed in the ``unresolved_*`` fields.
    """

    group_id: str | None = None
    currency: str
    balances: dict[str, int] = Field(default_factory=dict)
    has_mixed_currency_warning: bool = False
    unresolved_expense_ids: list[str] = Field(default_factory=list)
    unresolved_payment_ids: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        """Sum of all balances (zero for consistent input)."""
        return sum(self.balances.values())

    @property
    def is_settled(self) -> bool:
        return all(amount == 0 for amount in self.balances.values())

    def nonzero_count(self) -> int:
        return sum(1 for amount in self.balances.values() if amount != 0)


class SettlementSuggestion(BaseModel):
    """A suggested transfer from a debtor to a creditor."""

    model_config = ConfigDict(frozen=True)

    payer_id: str
    recipient_id: str
    amount: int = Field(gt=0)
    currency: str | None = None


class GroupSummary(BaseModel):
    """Result of one balance + settlement plan computation."""

    report: BalanceReport
    plan: list[SettlementSuggestion]
    computed_at: dt.datetime = Field(default_factory=dt.datetime.now)


class BalanceSnapshotRecord(BaseModel):
    """A stored summary, used for the balance history view."""

    id: int | None = None
    group_id: str
    currency: str
    balances: dict[str, int]
    plan: list[SettlementSuggestion]
    has_mixed_currency_warning: bool = False
    created_at: dt.datetime = Field(default_factory=dt.datetime.now)


# ============================================================================
# Snapshot Models
# ============================================================================


class GroupSnapshot(BaseModel):
    """Full dataset for a group at one point in time.

    Snapshots are never mutated; the ``with_*``/``without_*`` helpers return
    a new snapshot so an in-flight computation keeps seeing its own data.
    """

    group: Group
    members: list[Member] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)
    payments: list[Payment] = Field(default_factory=list)

    def member(self, member_id: str) -> Member | None:
        for member in self.members:
            if member.id == member_id:
                return member
        return None

    def display_name(self, member_id: str) -> str:
        """Get a member's display name, falling back to the raw id."""
        member = self.member(member_id)
        return member.display_name if member else member_id

    def with_member(self, member: Member) -> "GroupSnapshot":
        members = [m for m in self.members if m.id != member.id] + [member]
        return self.model_copy(update={"members": members})

    def with_expense(self, expense: Expense) -> "GroupSnapshot":
        """Add an expense, or replace the existing version with the same id."""
        expenses = list(self.expenses)
        for idx, existing in enumerate(expenses):
            if existing.id == expense.id:
                expenses[idx] = expense
                break
        else:
            expenses.append(expense)
        return self.model_copy(update={"expenses": expenses})

    def without_expense(self, expense_id: str) -> "GroupSnapshot":
        expenses = [e for e in self.expenses if e.id != expense_id]
        return self.model_copy(update={"expenses": expenses})

    def with_payment(self, payment: Payment) -> "GroupSnapshot":
        """Add a payment, or replace the existing version with the same id."""
        payments = list(self.payments)
        for idx, existing in enumerate(payments):
            if existing.id == payment.id:
                payments[idx] = payment
                break
        else:
            payments.append(payment)
        return self.model_copy(update={"payments": payments})

    def without_payment(self, payment_id: str) -> "GroupSnapshot":
        payments = [p for p in self.payments if p.id != payment_id]
        return self.model_copy(update={"payments": payments})


# ============================================================================
# Live Update Models
# ============================================================================

EventKind = Literal[
    "expense_upserted",
    "expense_deleted",
    "payment_upserted",
    "payment_deleted",
    "member_upserted",
]


class GroupEvent(BaseModel):
    """A change pushed by the data layer (realtime subscription or sync).

    Upserts carry the new record; deletes carry only ``record_id``.
    """

    kind: EventKind
    expense: Expense | None = None
    payment: Payment | None = None
    member: Member | None = None
    record_id: str | None = None
