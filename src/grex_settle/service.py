"""Service layer that composes the data store, rates and the calculators.

This module provides a higher-level API on top of the pure balance and
settlement functions: loading group data, building the configured rate
lookup, keeping a balance history, exporting to CSV and recording
settlements.
"""

import json
import logging
import uuid
from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from pathlib import Path

from .balances import compute_balances
from .clients.exchange_rates import ExchangeRateClient
from .clients.store import GroupStoreClient
from .config import Settings
from .db import Database
from .exceptions import ConfigurationError
from .export import write_group_csv
from .models import (
    BalanceReport,
    BalanceSnapshotRecord,
    GroupSnapshot,
    GroupSummary,
    Payment,
    SettlementSuggestion,
)
from .rates import CachedRateLookup, ChainedRateLookup, RateLookup, StaticRateTable
from .recompute import RecomputeCoordinator, summarize

logger = logging.getLogger(__name__)


def load_snapshot_file(path: Path) -> tuple[GroupSnapshot, dict[str, str]]:
    """
    Load a group snapshot from a JSON file.

    The file holds a serialized ``GroupSnapshot`` plus an optional ``rates``
    object of ``"FROM/TO": "rate"`` entries.

    Returns:
        Tuple of (snapshot, rates)
    """
    raw = json.loads(path.read_text(encoding="utf-8"))
    # "rates" sits beside the snapshot fields and is ignored by the model
    snapshot = GroupSnapshot.model_validate(raw)
    rates = {str(pair): str(rate) for pair, rate in raw.get("rates", {}).items()}
    return snapshot, rates


class GroupBalanceService:
    """Service for computing and settling group balances."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the balance service."""
        self.settings = settings
        self.db = database
        self._rate_client: ExchangeRateClient | None = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def close(self):
        """Close the exchange rate client, if one was opened."""
        if self._rate_client is not None:
            self._rate_client.close()
            self._rate_client = None

    def _store_client(self) -> GroupStoreClient:
        if not self.settings.store_url or not self.settings.store_api_key:
            raise ConfigurationError(
                "STORE_URL and STORE_API_KEY must be set to use the group data store"
            )
        return GroupStoreClient(
            self.settings.store_url,
            self.settings.store_api_key,
            self.settings.store_access_token,
        )

    def load_snapshot(self, group_id: str) -> GroupSnapshot:
        """Fetch the current dataset for a group from the store."""
        with self._store_client() as client:
            return client.get_snapshot(group_id)

    def build_rate_lookup(
        self, extra_rates: Mapping[str, str | Decimal] | None = None
    ) -> RateLookup:
        """
        Build the rate lookup used for foreign-currency transactions.

        Explicit rates (from a snapshot file) win; the remote rate API, when
        enabled, fills the gaps through the local cache.
        """
        static = StaticRateTable(extra_rates)
        if not self.settings.use_remote_rates:
            return static

        # One client per service, closed by close()
        if self._rate_client is None:
            self._rate_client = ExchangeRateClient(self.settings.exchange_rate_api_url)
        return ChainedRateLookup(static, CachedRateLookup(self._rate_client, self.db))

    def compute_report(
        self, snapshot: GroupSnapshot, rate_lookup: RateLookup | None = None
    ) -> BalanceReport:
        """
        Compute balances only, without planning settlements.

        Unlike ``summarize`` this never raises for inconsistent data; a
        non-zero total in the report is the symptom.
        """
        return compute_balances(
            snapshot.members,
            snapshot.expenses,
            snapshot.payments,
            snapshot.group.currency,
            rate_lookup,
            group_id=snapshot.group.id,
            rate_date_policy=self.settings.rate_date_policy,
        )

    def export_csv(
        self,
        snapshot: GroupSnapshot,
        path: Path,
        rate_lookup: RateLookup | None = None,
    ) -> BalanceReport:
        """
        Write the group's members, expenses, payments and balances to a CSV file.

        Returns:
            The balance report that was exported
        """
        report = self.compute_report(snapshot, rate_lookup)
        with path.open("w", encoding="utf-8", newline="") as f:
            write_group_csv(snapshot, report, f)

        logger.info(
            f"Exported group {snapshot.group.id} to {path} "
            f"({len(snapshot.expenses)} expenses, {len(snapshot.payments)} payments)"
        )
        return report

    def summarize(
        self, snapshot: GroupSnapshot, rate_lookup: RateLookup | None = None
    ) -> GroupSummary:
        """
        Compute balances and the settlement plan for a snapshot.

        Raises:
            SettlementInvariantError: If the balances cannot be settled
        """
        summary = summarize(
            snapshot,
            rate_lookup,
            tie_break=self.settings.tie_break,
            rate_date_policy=self.settings.rate_date_policy,
        )

        if summary.report.has_mixed_currency_warning:
            logger.warning(
                f"Group {snapshot.group.id} has mixed currencies that could not be "
                f"fully reconciled ({len(summary.report.unresolved_expense_ids)} expenses, "
                f"{len(summary.report.unresolved_payment_ids)} payments excluded)"
            )

        logger.info(
            f"Summarized group {snapshot.group.id}: "
            f"{summary.report.nonzero_count()} unsettled members, "
            f"{len(summary.plan)} suggested transfers"
        )
        return summary

    def create_coordinator(
        self, rate_lookup: RateLookup | None = None
    ) -> RecomputeCoordinator:
        """Create a recompute coordinator using this service's settings."""
        return RecomputeCoordinator(
            compute=lambda snapshot: self.summarize(snapshot, rate_lookup),
            max_workers=self.settings.recompute_workers,
        )

    def record_summary(self, summary: GroupSummary) -> int:
        """Save a summary to the balance history."""
        record = BalanceSnapshotRecord(
            group_id=summary.report.group_id or "",
            currency=summary.report.currency,
            balances=summary.report.balances,
            plan=summary.plan,
            has_mixed_currency_warning=summary.report.has_mixed_currency_warning,
            created_at=summary.computed_at,
        )
        row_id = self.db.save_balance_snapshot(record)
        logger.info(f"Saved balance snapshot {row_id} for group {record.group_id}")
        return row_id

    def get_history(self, group_id: str, limit: int = 20) -> list[BalanceSnapshotRecord]:
        """Get stored summaries for a group, newest first."""
        return self.db.get_balance_history(group_id, limit=limit)

    def build_settlement_payment(
        self, snapshot: GroupSnapshot, suggestion: SettlementSuggestion
    ) -> Payment:
        """
        Turn a suggestion into a payment ready to be recorded.

        Nothing is sent to the store.
        """
        return Payment(
            id=str(uuid.uuid4()),
            group_id=snapshot.group.id,
            payer_id=suggestion.payer_id,
            recipient_id=suggestion.recipient_id,
            amount=suggestion.amount,
            currency=suggestion.currency or snapshot.group.currency,
            description=(
                f"Settlement: {snapshot.display_name(suggestion.payer_id)} -> "
                f"{snapshot.display_name(suggestion.recipient_id)}"
            ),
            date=date.today(),
        )

    def record_settlement(
        self, snapshot: GroupSnapshot, suggestion: SettlementSuggestion
    ) -> tuple[Payment, GroupSnapshot]:
        """
        Execute a suggested settlement by recording a real payment.

        Returns:
            Tuple of (stored payment, snapshot including the payment)
        """
        payment = self.build_settlement_payment(snapshot, suggestion)

        with self._store_client() as client:
            stored = client.create_payment(payment)

        logger.info(
            f"Recorded settlement {stored.id}: {stored.payer_id} -> "
            f"{stored.recipient_id} ({stored.amount} {stored.currency})"
        )
        return stored, snapshot.with_payment(stored)
