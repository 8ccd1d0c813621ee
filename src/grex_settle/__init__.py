"""grex-settle - Group balances and settlement plans for shared expenses."""

__version__ = "0.1.0"

from .balances import compute_balances
from .config import Settings, load_settings
from .db import Database
from .models import (
    BalanceReport,
    Expense,
    Group,
    GroupSnapshot,
    GroupSummary,
    Member,
    ParticipantShare,
    Payment,
    SettlementSuggestion,
)
from .planner import apply_settlement_plan, compute_settlement_plan
from .recompute import LiveGroup, RecomputeCoordinator, summarize
from .service import GroupBalanceService

__all__ = [
    "compute_balances",
    "Settings",
    "load_settings",
    "Database",
    "BalanceReport",
    "Expense",
    "Group",
    "GroupSnapshot",
    "GroupSummary",
    "Member",
    "ParticipantShare",
    "Payment",
    "SettlementSuggestion",
    "apply_settlement_plan",
    "compute_settlement_plan",
    "LiveGroup",
    "RecomputeCoordinator",
    "summarize",
    "GroupBalanceService",
]
