"""Tests for the interactive settlement picker."""

from unittest.mock import patch

import pytest
from prompt_toolkit.document import Document

from grex_settle.models import Group, GroupSnapshot, Member, SettlementSuggestion
from grex_settle.ui import (
    SuggestionCompleter,
    confirm_settlement,
    describe_suggestion,
    select_suggestion_interactive,
)


@pytest.fixture
def snapshot():
    return GroupSnapshot(
        group=Group(id="g1", currency="VND"),
        members=[
            Member(id="A", display_name="Alice"),
            Member(id="B", display_name="Bob"),
            Member(id="C", display_name="Carol"),
        ],
    )


@pytest.fixture
def plan():
    return [
        SettlementSuggestion(payer_id="B", recipient_id="A", amount=100000, currency="VND"),
        SettlementSuggestion(payer_id="C", recipient_id="A", amount=50000, currency="VND"),
    ]


class TestDescribeSuggestion:
    def test_label(self, snapshot, plan):
        assert describe_suggestion(snapshot, plan[0]) == "Bob -> Alice ₫100,000"

    def test_unknown_member_and_group_currency(self, snapshot):
        suggestion = SettlementSuggestion(payer_id="Z", recipient_id="A", amount=5)

        assert describe_suggestion(snapshot, suggestion) == "Z -> Alice ₫5"


class TestSuggestionCompleter:
    """Tests for SuggestionCompleter."""

    def test_fuzzy_completions(self, snapshot, plan):
        completer = SuggestionCompleter(snapshot, plan)

        completions = list(completer.get_completions(Document("carl"), None))

        assert [c.text for c in completions] == ["2. Carol -> Alice ₫50,000"]

    def test_empty_query_lists_everything(self, snapshot, plan):
        completer = SuggestionCompleter(snapshot, plan)

        assert len(list(completer.get_completions(Document(""), None))) == 2

    def test_resolve(self, snapshot, plan):
        completer = SuggestionCompleter(snapshot, plan)

        assert completer.resolve("1. Bob -> Alice ₫100,000") == 0
        assert completer.resolve("2") == 1
        assert completer.resolve(" 2. ") == 1
        assert completer.resolve("3") is None
        assert completer.resolve("bob") is None


class TestInteractive:
    """Tests for the prompt-driven helpers."""

    @patch("grex_settle.ui.PromptSession")
    def test_select_by_number(self, mock_session_class, snapshot, plan):
        mock_session_class.return_value.prompt.side_effect = ["9", "2"]

        assert select_suggestion_interactive(snapshot, plan) == plan[1]

    @patch("grex_settle.ui.PromptSession")
    def test_skip_with_ctrl_c(self, mock_session_class, snapshot, plan):
        mock_session_class.return_value.prompt.side_effect = KeyboardInterrupt

        assert select_suggestion_interactive(snapshot, plan) is None

    def test_empty_plan(self, snapshot):
        assert select_suggestion_interactive(snapshot, []) is None

    @pytest.mark.parametrize("answer,expected", [("", True), ("y", True), ("n", False)])
    def test_confirm(self, answer, expected, snapshot, plan):
        with patch("builtins.input", return_value=answer):
            assert confirm_settlement(snapshot, plan[0]) is expected
