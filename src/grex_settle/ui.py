"""Interactive UI components for picking settlements to record."""

import logging
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .currency import format_amount
from .models import GroupSnapshot, SettlementSuggestion

logger = logging.getLogger(__name__)


def describe_suggestion(snapshot: GroupSnapshot, suggestion: SettlementSuggestion) -> str:
    """Human-readable label, e.g. "Bob -> Alice ₫100,000"."""
    currency = suggestion.currency or snapshot.group.currency
    return (
        f"{snapshot.display_name(suggestion.payer_id)} -> "
        f"{snapshot.display_name(suggestion.recipient_id)} "
        f"{format_amount(suggestion.amount, currency)}"
    )


class SuggestionCompleter(Completer):
    """Fuzzy search completer for settlement suggestions."""

    def __init__(self, snapshot: GroupSnapshot, plan: list[SettlementSuggestion]):
        """Initialize the completer with the current plan."""
        self.labels = []
        self.label_to_index = {}
        for idx, suggestion in enumerate(plan, start=1):
            label = f"{idx}. {describe_suggestion(snapshot, suggestion)}"
            self.labels.append(label)
            self.label_to_index[label] = idx - 1

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for label in self.labels:
            if not query or self._fuzzy_match(query, label.lower()):
                yield Completion(
                    text=label,
                    start_position=-len(document.text),
                    display=label,
                )

    def _fuzzy_match(self, query: str, text: str) -> bool:
        """
        Fuzzy match: all characters in query must appear in order in text.

        Example:
            query="bal" matches "2. Bob -> Alice ₫100,000"
        """
        query_idx = 0
        for char in text:
            if query_idx < len(query) and char == query[query_idx]:
                query_idx += 1
        return query_idx == len(query)

    def resolve(self, text: str) -> int | None:
        """Map typed text to a plan index (full label or its number)."""
        if text in self.label_to_index:
            return self.label_to_index[text]

        number = text.strip().rstrip(".")
        if number.isdigit() and 1 <= int(number) <= len(self.labels):
            return int(number) - 1
        return None


def select_suggestion_interactive(
    snapshot: GroupSnapshot, plan: list[SettlementSuggestion]
) -> SettlementSuggestion | None:
    """
    Interactive selection of a suggestion to record as a payment.

    Returns:
        Selected suggestion, or None to skip
    """
    if not plan:
        return None

    print("\n💸 Which settlement was paid?")
    print("   Type to search or enter a number, Enter to confirm, Ctrl+C to skip\n")

    completer = SuggestionCompleter(snapshot, plan)
    session: PromptSession[str] = PromptSession(completer=completer)

    try:
        while True:
            result = session.prompt("Settlement: ", complete_while_typing=True)

            if not result:
                return None

            index = completer.resolve(result)
            if index is not None:
                logger.info(f"User selected settlement {index + 1}")
                return plan[index]

            print("❌ Invalid choice. Pick a settlement from the list.")

    except KeyboardInterrupt:
        print("\n⏭️  Skipped")
        return None
    except EOFError:
        return None


def confirm_settlement(snapshot: GroupSnapshot, suggestion: SettlementSuggestion) -> bool:
    """Simple yes/no confirmation before recording a payment."""
    print(f"\n💸 {describe_suggestion(snapshot, suggestion)}")

    response = input("   Record this payment? [Y/n] ").strip().lower()

    return response in ("", "y", "yes")
