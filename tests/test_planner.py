"""Tests for the settlement planner."""

import random

import pytest

from grex_settle.exceptions import SettlementInvariantError
from grex_settle.models import SettlementSuggestion
from grex_settle.planner import apply_settlement_plan, compute_settlement_plan


def random_zero_sum_balances(rng: random.Random, size: int) -> dict[str, int]:
    """Generate zero-sum balances for ``size`` members."""
    balances = {f"m{idx:02d}": rng.randint(-500000, 500000) for idx in range(size - 1)}
    balances[f"m{size - 1:02d}"] = -sum(balances.values())
    return balances


class TestComputeSettlementPlan:
    """Tests for compute_settlement_plan."""

    def test_one_creditor_two_debtors(self):
        """A is owed 200000, B and C each owe 100000."""
        plan = compute_settlement_plan({"A": 200000, "B": -100000, "C": -100000})

        assert plan == [
            SettlementSuggestion(payer_id="B", recipient_id="A", amount=100000),
            SettlementSuggestion(payer_id="C", recipient_id="A", amount=100000),
        ]

    def test_partially_settled_group(self):
        """After B paid, only C still owes A."""
        plan = compute_settlement_plan({"A": 30000, "B": 0, "C": -30000})

        assert plan == [SettlementSuggestion(payer_id="C", recipient_id="A", amount=30000)]

    def test_largest_debtor_matched_with_largest_creditor(self):
        """Each step pairs the two largest outstanding amounts."""
        plan = compute_settlement_plan({"A": 50, "B": 150, "C": -120, "D": -80})

        assert [(s.payer_id, s.recipient_id, s.amount) for s in plan] == [
            ("C", "B", 120),
            ("D", "A", 50),
            ("D", "B", 30),
        ]

    def test_empty_balances(self):
        """No members means no transfers."""
        assert compute_settlement_plan({}) == []

    def test_all_settled(self):
        """Zero balances need no transfers."""
        assert compute_settlement_plan({"A": 0, "B": 0, "C": 0}) == []

    def test_currency_stamped_on_suggestions(self):
        """The currency is carried on every suggestion."""
        plan = compute_settlement_plan({"A": 100, "B": -100}, currency="VND")

        assert plan[0].currency == "VND"

    def test_amounts_are_positive(self):
        """Suggestions never carry zero or negative amounts."""
        plan = compute_settlement_plan({"A": 5, "B": 3, "C": -7, "D": -1})

        assert all(suggestion.amount > 0 for suggestion in plan)


class TestTieBreak:
    """Ordering among equal amounts."""

    def test_member_id_order_by_default(self):
        """Equal debtors are matched in ascending id order."""
        plan = compute_settlement_plan({"C": -50, "B": -50, "A": 100})

        assert [s.payer_id for s in plan] == ["B", "C"]

    def test_input_order(self):
        """Equal debtors are matched in the order they were given."""
        plan = compute_settlement_plan({"C": -50, "B": -50, "A": 100}, tie_break="input_order")

        assert [s.payer_id for s in plan] == ["C", "B"]

    def test_unknown_policy_rejected(self):
        """An unknown tie-break is a programming error."""
        with pytest.raises(ValueError, match="tie-break"):
            compute_settlement_plan({"A": 1, "B": -1}, tie_break="random")  # type: ignore[arg-type]


class TestPlanProperties:
    """Properties that hold for any zero-sum input."""

    @pytest.mark.parametrize("seed", range(25))
    def test_plan_settles_everyone_within_bound(self, seed):
        """Applying the plan zeroes every balance in at most n-1 transfers."""
        rng = random.Random(seed)
        balances = random_zero_sum_balances(rng, rng.randint(2, 12))

        plan = compute_settlement_plan(balances)

        nonzero = sum(1 for amount in balances.values() if amount != 0)
        assert len(plan) <= max(nonzero - 1, 0)
        assert all(amount == 0 for amount in apply_settlement_plan(balances, plan).values())

    @pytest.mark.parametrize("seed", range(5))
    def test_plan_is_deterministic(self, seed):
        """The same balances always give the same plan."""
        rng = random.Random(seed)
        balances = random_zero_sum_balances(rng, 8)

        assert compute_settlement_plan(balances) == compute_settlement_plan(dict(balances))

    def test_member_id_plan_ignores_input_order(self):
        """With the default tie-break, reordering the input changes nothing."""
        balances = {"A": 100, "B": 100, "C": -100, "D": -100}
        reordered = {"D": -100, "B": 100, "C": -100, "A": 100}

        assert compute_settlement_plan(balances) == compute_settlement_plan(reordered)


class TestInvariantViolation:
    """Balances that don't sum to zero."""

    def test_residual_raises(self):
        """Leftover credit is reported instead of silently dropped."""
        with pytest.raises(SettlementInvariantError) as exc_info:
            compute_settlement_plan({"A": 100, "B": -60})

        assert exc_info.value.residuals == {"A": 40}

    def test_residual_debt_raises(self):
        """Leftover debt is reported as a negative residual."""
        with pytest.raises(SettlementInvariantError) as exc_info:
            compute_settlement_plan({"A": 50, "B": -80})

        assert exc_info.value.residuals == {"B": -30}

    def test_only_creditors(self):
        """Credit with nobody to pay it is a violation."""
        with pytest.raises(SettlementInvariantError):
            compute_settlement_plan({"A": 10})


class TestApplySettlementPlan:
    """Tests for apply_settlement_plan."""

    def test_does_not_modify_input(self):
        """The input mapping is left untouched."""
        balances = {"A": 100, "B": -100}
        plan = [SettlementSuggestion(payer_id="B", recipient_id="A", amount=100)]

        result = apply_settlement_plan(balances, plan)

        assert result == {"A": 0, "B": 0}
        assert balances == {"A": 100, "B": -100}

    def test_partial_application(self):
        """Applying part of a plan leaves the rest outstanding."""
        balances = {"A": 200000, "B": -100000, "C": -100000}
        plan = compute_settlement_plan(balances)

        result = apply_settlement_plan(balances, plan[:1])

        assert result == {"A": 100000, "B": 0, "C": -100000}
