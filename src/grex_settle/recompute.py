"""Last-write-wins recomputation of balances and settlement plans.

Every data change triggers a fresh computation from the full latest
snapshot; nothing is updated incrementally. Computations run on a worker
pool and each one is tagged with a monotonic request token. Only the result
of the most recent request is published to listeners, so a slow computation
over old data can never overwrite a newer result.
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from .balances import RateDatePolicy, compute_balances
from .models import GroupEvent, GroupSnapshot, GroupSummary
from .planner import TieBreak, compute_settlement_plan
from .rates import RateLookup

logger = logging.getLogger(__name__)

SummaryListener = Callable[[GroupSummary], None]


def summarize(
    snapshot: GroupSnapshot,
    rate_lookup: RateLookup | None = None,
    *,
    tie_break: TieBreak = "member_id",
    rate_date_policy: RateDatePolicy = "transaction",
) -> GroupSummary:
    """Compute balances and the settlement plan for a snapshot."""
    report = compute_balances(
        snapshot.members,
        snapshot.expenses,
        snapshot.payments,
        snapshot.group.currency,
        rate_lookup,
        group_id=snapshot.group.id,
        rate_date_policy=rate_date_policy,
    )
    plan = compute_settlement_plan(
        report.balances, currency=report.currency, tie_break=tie_break
    )
    return GroupSummary(report=report, plan=plan)


@dataclass(frozen=True)
class RecomputeRequest:
    """Handle for one submitted computation."""

    token: int
    future: Future


class RecomputeCoordinator:
    """Runs summaries off the caller's thread and publishes the latest one."""

    def __init__(
        self,
        compute: Callable[[GroupSnapshot], GroupSummary] = summarize,
        max_workers: int = 1,
    ):
        self._compute = compute
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="grex-recompute"
        )
        self._lock = threading.Lock()
        # Serializes delivery so listeners see summaries in token order
        self._publish_lock = threading.Lock()
        self._latest_token = 0
        self._latest: GroupSummary | None = None
        self._listeners: list[SummaryListener] = []

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.shutdown()

    @property
    def latest(self) -> GroupSummary | None:
        """The most recently published summary."""
        with self._lock:
            return self._latest

    @property
    def latest_token(self) -> int:
        with self._lock:
            return self._latest_token

    def is_current(self, token: int) -> bool:
        """Check whether a request is still the most recent one."""
        with self._lock:
            return token == self._latest_token

    def subscribe(self, listener: SummaryListener) -> Callable[[], None]:
        """
        Register a listener for published summaries.

        Returns:
            A function that removes the listener again
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def submit(self, snapshot: GroupSnapshot) -> RecomputeRequest:
        """
        Schedule a computation for a snapshot.

        The returned future resolves with the summary even when it has been
        superseded; only listeners are shielded from stale results.
        """
        with self._lock:
            self._latest_token += 1
            token = self._latest_token
            future = self._executor.submit(self._run, token, snapshot)

        logger.debug(f"Submitted recompute #{token} for group {snapshot.group.id}")
        return RecomputeRequest(token=token, future=future)

    def _run(self, token: int, snapshot: GroupSnapshot) -> GroupSummary:
        try:
            summary = self._compute(snapshot)
        except Exception:
            logger.exception(f"Recompute #{token} for group {snapshot.group.id} failed")
            raise

        self._publish(token, summary)
        return summary

    def _publish(self, token: int, summary: GroupSummary):
        with self._publish_lock:
            with self._lock:
                if token != self._latest_token:
                    logger.debug(
                        f"Discarding stale recompute #{token} "
                        f"(latest is #{self._latest_token})"
                    )
                    return
                self._latest = summary
                listeners = list(self._listeners)

            # Listeners run outside the state lock so they may submit more work
            for listener in listeners:
                try:
                    listener(summary)
                except Exception:
                    # One failing listener must not starve the others
                    logger.exception("Summary listener raised an error")

    def shutdown(self, wait: bool = True):
        """Stop the worker pool."""
        self._executor.shutdown(wait=wait)


class LiveGroup:
    """
    Keeps the latest snapshot of a group and recomputes on every change.

    Events may arrive from any thread. Applying an event and submitting the
    resulting snapshot happen under one lock, so request tokens follow the
    order in which events were applied.
    """

    def __init__(self, snapshot: GroupSnapshot, coordinator: RecomputeCoordinator):
        self._snapshot = snapshot
        self.coordinator = coordinator
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> GroupSnapshot:
        with self._lock:
            return self._snapshot

    def refresh(self) -> RecomputeRequest:
        """Recompute from the current snapshot."""
        with self._lock:
            return self.coordinator.submit(self._snapshot)

    def replace(self, snapshot: GroupSnapshot) -> RecomputeRequest:
        """Swap in a freshly fetched snapshot and recompute."""
        with self._lock:
            self._snapshot = snapshot
            return self.coordinator.submit(snapshot)

    def apply(self, event: GroupEvent) -> RecomputeRequest:
        """Apply a pushed change and recompute."""
        with self._lock:
            self._snapshot = apply_event(self._snapshot, event)
            return self.coordinator.submit(self._snapshot)


def apply_event(snapshot: GroupSnapshot, event: GroupEvent) -> GroupSnapshot:
    """
    Return a new snapshot with an event applied.

    Raises:
        ValueError: If the event is missing the record it refers to
    """
    if event.kind == "expense_upserted" and event.expense is not None:
        return snapshot.with_expense(event.expense)
    if event.kind == "expense_deleted" and event.record_id is not None:
        return snapshot.without_expense(event.record_id)
    if event.kind == "payment_upserted" and event.payment is not None:
        return snapshot.with_payment(event.payment)
    if event.kind == "payment_deleted" and event.record_id is not None:
        return snapshot.without_payment(event.record_id)
    if event.kind == "member_upserted" and event.member is not None:
        return snapshot.with_member(event.member)

    raise ValueError(f"Event {event.kind!r} is missing its record")
