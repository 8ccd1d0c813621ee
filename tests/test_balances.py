"""Tests for the balance calculator."""

import random
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from grex_settle.balances import compute_balances, convert_minor_units
from grex_settle.models import Expense, Member, ParticipantShare, Payment
from grex_settle.planner import compute_settlement_plan
from grex_settle.rates import StaticRateTable
from grex_settle.splitter import split_equally

MEMBERS = [
    Member(id="A", display_name="Alice", email="alice@test.com"),
    Member(id="B", display_name="Bob", email="bob@test.com"),
    Member(id="C", display_name="Carol", email="carol@test.com"),
]


# Helper functions for tests
def make_expense(
    id: str,
    payer: str,
    amount: int,
    shares: dict[str, int],
    currency: str = "VND",
    on: date = date(2025, 1, 15),
) -> Expense:
    """Create an Expense for testing."""
    return Expense(
        id=id,
        group_id="g1",
        payer_id=payer,
        amount=amount,
        currency=currency,
        description=f"Test expense {id}",
        date=on,
        participants=[
            ParticipantShare(member_id=member_id, share_amount=share)
            for member_id, share in shares.items()
        ],
    )


def make_payment(
    id: str,
    payer: str,
    recipient: str,
    amount: int,
    currency: str = "VND",
    on: date = date(2025, 1, 20),
) -> Payment:
    """Create a Payment for testing."""
    return Payment(
        id=id,
        group_id="g1",
        payer_id=payer,
        recipient_id=recipient,
        amount=amount,
        currency=currency,
        date=on,
    )


class TestBasicBalances:
    """Expenses and payments in the group currency."""

    def test_equal_split_expense(self):
        """A pays 300000 split equally among A, B and C."""
        expense = make_expense("e1", "A", 300000, {"A": 100000, "B": 100000, "C": 100000})

        report = compute_balances(MEMBERS, [expense], [], "VND")

        assert report.balances == {"A": 200000, "B": -100000, "C": -100000}
        assert report.total == 0
        assert not report.has_mixed_currency_warning

    def test_payment_moves_both_balances_toward_zero(self):
        """After B pays A 30000, B is settled and A is owed less."""
        expense = make_expense("e1", "A", 90000, {"A": 30000, "B": 30000, "C": 30000})
        payment = make_payment("p1", "B", "A", 30000)

        before = compute_balances(MEMBERS, [expense], [], "VND")
        after = compute_balances(MEMBERS, [expense], [payment], "VND")

        assert before.balances == {"A": 60000, "B": -30000, "C": -30000}
        assert after.balances == {"A": 30000, "B": 0, "C": -30000}

    def test_payer_not_participating(self):
        """A payer outside the split is credited with the whole amount."""
        expense = make_expense("e1", "A", 100000, {"B": 50000, "C": 50000})

        report = compute_balances(MEMBERS, [expense], [], "VND")

        assert report.balances == {"A": 100000, "B": -50000, "C": -50000}

    def test_members_without_activity_have_zero_balance(self):
        """Every member appears in the report, even with no transactions."""
        report = compute_balances(MEMBERS, [], [], "VND")

        assert report.balances == {"A": 0, "B": 0, "C": 0}
        assert report.is_settled
        assert report.nonzero_count() == 0

    def test_zero_amount_payment_changes_nothing(self):
        """Recording a zero payment leaves balances unchanged."""
        expense = make_expense("e1", "A", 90000, {"A": 30000, "B": 30000, "C": 30000})

        without = compute_balances(MEMBERS, [expense], [], "VND")
        with_zero = compute_balances(
            MEMBERS, [expense], [make_payment("p0", "B", "A", 0)], "VND"
        )

        assert with_zero.balances == without.balances

    def test_unknown_member_still_gets_a_balance(self):
        """Transactions referencing non-members are not dropped."""
        expense = make_expense("e1", "A", 100000, {"A": 50000, "Z": 50000})

        report = compute_balances(MEMBERS, [expense], [], "VND")

        assert report.balances["Z"] == -50000
        assert report.total == 0

    def test_group_id_and_currency_on_report(self):
        """Report carries the group and normalized currency."""
        report = compute_balances(MEMBERS, [], [], "vnd", group_id="g1")

        assert report.group_id == "g1"
        assert report.currency == "VND"


class TestZeroSumInvariant:
    """Balances of consistent input always sum to zero."""

    def test_many_transactions_sum_to_zero(self):
        """A mix of expenses and payments nets to exactly zero."""
        expenses = [
            make_expense("e1", "A", 300000, {"A": 100000, "B": 100000, "C": 100000}),
            make_expense("e2", "B", 150000, {"A": 75000, "B": 75000}),
            make_expense("e3", "C", 100001, {"A": 33334, "B": 33334, "C": 33333}),
            make_expense("e4", "A", 0, {"A": 0, "B": 0}),
        ]
        payments = [
            make_payment("p1", "B", "A", 25000),
            make_payment("p2", "C", "A", 40000),
            make_payment("p3", "A", "C", 5000),
        ]

        report = compute_balances(MEMBERS, expenses, payments, "VND")

        assert report.total == 0
        assert sum(report.balances.values()) == 0

    def test_malformed_expense_is_not_fixed_up(self):
        """Shares that don't sum to the amount leave a non-zero total."""
        expense = make_expense("e1", "A", 100000, {"B": 50000, "C": 40000})

        report = compute_balances(MEMBERS, [expense], [], "VND")

        assert report.balances == {"A": 100000, "B": -50000, "C": -40000}
        assert report.total == 10000


class TestMixedCurrency:
    """Foreign-currency transactions and the mixed-currency warning."""

    def test_missing_rate_flags_warning_and_excludes_expense(self):
        """Without a rate the expense is left out and reported."""
        local = make_expense("e1", "A", 90000, {"A": 30000, "B": 30000, "C": 30000})
        foreign = make_expense("e2", "B", 3000, {"A": 1500, "B": 1500}, currency="USD")

        report = compute_balances(MEMBERS, [local, foreign], [], "VND")

        assert report.has_mixed_currency_warning
        assert report.unresolved_expense_ids == ["e2"]
        assert report.balances == {"A": 60000, "B": -30000, "C": -30000}
        assert report.total == 0

    def test_missing_rate_for_payment(self):
        """Unconvertible payments are flagged separately."""
        payment = make_payment("p1", "B", "A", 1000, currency="EUR")

        report = compute_balances(MEMBERS, [], [payment], "VND", StaticRateTable())

        assert report.has_mixed_currency_warning
        assert report.unresolved_payment_ids == ["p1"]
        assert report.balances == {"A": 0, "B": 0, "C": 0}

    def test_converts_expense_with_rate(self):
        """USD expense is converted into VND before netting."""
        rates = StaticRateTable({"USD/VND": "25000"})
        expense = make_expense(
            "e1", "A", 3000, {"A": 1000, "B": 1000, "C": 1000}, currency="USD"
        )

        report = compute_balances(MEMBERS, [expense], [], "VND", rates)

        assert report.balances == {"A": 500000, "B": -250000, "C": -250000}
        assert not report.has_mixed_currency_warning

    def test_converts_payment_with_inverse_rate(self):
        """A VND/USD rate is inverted to convert USD into VND."""
        rates = StaticRateTable({"VND/USD": "0.00004"})
        payment = make_payment("p1", "B", "A", 1000, currency="USD")

        report = compute_balances(MEMBERS, [], [payment], "VND", rates)

        assert report.balances == {"A": -250000, "B": 250000, "C": 0}

    def test_conversion_rounding_keeps_zero_sum(self):
        """Rounding residual from converting shares goes to the largest share."""
        rates = StaticRateTable({"USD/VND": "25001"})
        expense = make_expense("e1", "A", 100, {"A": 34, "B": 33, "C": 33}, currency="USD")

        report = compute_balances(MEMBERS, [expense], [], "VND", rates)

        assert report.total == 0
        # $1.00 -> 25001 VND credited to A
        assert report.balances["B"] == -8250
        assert report.balances["C"] == -8250
        assert report.balances["A"] == 25001 - 8501

    def test_conversion_does_not_fix_malformed_expense(self):
        """Malformed foreign expenses stay inconsistent after conversion."""
        rates = StaticRateTable({"USD/VND": "25000"})
        expense = make_expense("e1", "A", 100, {"B": 50}, currency="USD")

        report = compute_balances(MEMBERS, [expense], [], "VND", rates)

        assert report.total == 12500

    def test_transaction_date_passed_to_lookup(self):
        """Default policy converts at the transaction date."""
        lookup = MagicMock(return_value=Decimal("25000"))
        expense = make_expense(
            "e1", "A", 100, {"A": 50, "B": 50}, currency="USD", on=date(2025, 3, 1)
        )

        compute_balances(MEMBERS, [expense], [], "VND", lookup)

        lookup.assert_called_once_with("USD", "VND", date(2025, 3, 1))

    def test_latest_policy_passes_no_date(self):
        """The "latest" policy asks for the current rate."""
        lookup = MagicMock(return_value=Decimal("25000"))
        expense = make_expense("e1", "A", 100, {"A": 50, "B": 50}, currency="USD")

        compute_balances(MEMBERS, [expense], [], "VND", lookup, rate_date_policy="latest")

        lookup.assert_called_once_with("USD", "VND", None)

    def test_non_positive_rate_is_unavailable(self):
        """A zero rate is treated like a missing one."""
        lookup = MagicMock(return_value=Decimal("0"))
        expense = make_expense("e1", "A", 100, {"A": 50, "B": 50}, currency="USD")

        report = compute_balances(MEMBERS, [expense], [], "VND", lookup)

        assert report.has_mixed_currency_warning

    def test_unsupported_currency_is_unresolved(self):
        """Unknown currency codes can't be converted and are flagged."""
        lookup = MagicMock(return_value=Decimal("2"))
        expense = make_expense("e1", "A", 100, {"A": 50, "B": 50}, currency="XYZ")

        report = compute_balances(MEMBERS, [expense], [], "VND", lookup)

        assert report.unresolved_expense_ids == ["e1"]
        assert report.balances == {"A": 0, "B": 0, "C": 0}


class TestConvertMinorUnits:
    """Tests for convert_minor_units."""

    def test_two_decimal_to_zero_decimal(self):
        assert convert_minor_units(1000, "USD", "VND", Decimal("25000")) == 250000

    def test_zero_decimal_to_two_decimal(self):
        assert convert_minor_units(250000, "VND", "USD", Decimal("0.00004")) == 1000

    def test_rounds_half_up(self):
        # 0.01 USD * 50 = 0.5 JPY -> 1
        assert convert_minor_units(1, "USD", "JPY", Decimal("50")) == 1


class TestSettlingWithPayments:
    """Recording every suggested transfer as a payment settles the group."""

    @pytest.mark.parametrize("seed", range(20))
    def test_recorded_plan_zeroes_balances(self, seed):
        rng = random.Random(seed)
        member_ids = [f"m{idx}" for idx in range(rng.randint(2, 8))]
        members = [Member(id=member_id, display_name=member_id) for member_id in member_ids]

        expenses = []
        for idx in range(rng.randint(1, 10)):
            participants = rng.sample(member_ids, rng.randint(1, len(member_ids)))
            shares = split_equally(rng.randint(0, 2_000_000), participants)
            expenses.append(
                make_expense(f"e{idx}", rng.choice(member_ids), sum(shares.values()), shares)
            )
        payments = [
            make_payment(f"p{idx}", *rng.sample(member_ids, 2), rng.randint(0, 500_000))
            for idx in range(rng.randint(0, 5))
        ]

        before = compute_balances(members, expenses, payments, "VND")
        plan = compute_settlement_plan(before.balances, currency="VND")
        settlements = [
            make_payment(f"s{idx}", s.payer_id, s.recipient_id, s.amount)
            for idx, s in enumerate(plan)
        ]
        after = compute_balances(members, expenses, payments + settlements, "VND")

        assert after.is_settled
        assert len(plan) <= max(before.nonzero_count() - 1, 0)
