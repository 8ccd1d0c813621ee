"""Client for the hosted group data store (PostgREST-compatible REST API)."""

import logging
from datetime import date
from decimal import Decimal
from typing import Any

import httpx

from ..currency import from_minor_units, to_minor_units
from ..exceptions import StoreAPIError
from ..models import (
    Expense,
    Group,
    GroupSnapshot,
    Member,
    ParticipantShare,
    Payment,
)

logger = logging.getLogger(__name__)


class GroupStoreClient:
    """Read group data from the store and record payments."""

    REST_PATH = "/rest/v1"

    def __init__(self, base_url: str, api_key: str, access_token: str | None = None):
        """Initialize the store client."""
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(
            base_url=f"{self.base_url}{self.REST_PATH}",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {access_token or api_key}",
                "Content-Type": "application/json",
            },
            timeout=30.0,
        )

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def _get(self, path: str, params: dict[str, str]) -> list[dict[str, Any]]:
        try:
            response = self.client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Store API error: {e}")
            logger.error(f"Response body: {e.response.text}")
            raise StoreAPIError(f"GET {path} failed: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error fetching {path}: {e}")
            raise StoreAPIError(f"GET {path} failed: {e}") from e

        rows: list[dict[str, Any]] = response.json()
        return rows

    def get_group(self, group_id: str) -> Group:
        """Get a group and its default currency."""
        rows = self._get(
            "/groups",
            {
                "id": f"eq.{group_id}",
                "deleted_at": "is.null",
                "select": "id,name,primary_currency",
            },
        )
        if not rows:
            raise StoreAPIError(f"Group {group_id} not found")

        row = rows[0]
        return Group(id=row["id"], name=row["name"], currency=row["primary_currency"])

    def get_members(self, group_id: str) -> list[Member]:
        """Get the members of a group."""
        rows = self._get(
            "/group_members",
            {
                "group_id": f"eq.{group_id}",
                "select": "user_id,users(email,display_name)",
                "order": "joined_at.asc",
            },
        )

        members = []
        for row in rows:
            user = row.get("users") or {}
            members.append(
                Member(
                    id=row["user_id"],
                    display_name=user.get("display_name") or user.get("email") or row["user_id"],
                    email=user.get("email") or "",
                )
            )
        return members

    def get_expenses(self, group_id: str) -> list[Expense]:
        """
        Get the live (non-deleted) expenses of a group.

        Store amounts are decimal major units; they are converted to integer
        minor units of each expense's currency.
        """
        rows = self._get(
            "/expenses",
            {
                "group_id": f"eq.{group_id}",
                "deleted_at": "is.null",
                "select": "*,expense_participants(user_id,share_amount)",
                "order": "expense_date.asc,created_at.asc",
            },
        )

        expenses = []
        for row in rows:
            currency = row["currency"]
            amount, participants = self._parse_shares(
                row["id"],
                Decimal(str(row["amount"])),
                [
                    (part["user_id"], Decimal(str(part["share_amount"])))
                    for part in row.get("expense_participants", [])
                ],
                currency,
            )
            expenses.append(
                Expense(
                    id=row["id"],
                    group_id=row["group_id"],
                    payer_id=row["payer_id"],
                    amount=amount,
                    currency=currency,
                    description=row.get("description") or "",
                    date=date.fromisoformat(row["expense_date"]),
                    participants=participants,
                    split_method=row.get("split_method") or "exact",
                )
            )
        return expenses

    def get_payments(self, group_id: str) -> list[Payment]:
        """Get the live (non-deleted) payments of a group."""
        rows = self._get(
            "/payments",
            {
                "group_id": f"eq.{group_id}",
                "deleted_at": "is.null",
                "order": "payment_date.asc,created_at.asc",
            },
        )
        return [self._parse_payment(row) for row in rows]

    def get_snapshot(self, group_id: str) -> GroupSnapshot:
        """Fetch everything needed to compute balances for a group."""
        group = self.get_group(group_id)
        snapshot = GroupSnapshot(
            group=group,
            members=self.get_members(group_id),
            expenses=self.get_expenses(group_id),
            payments=self.get_payments(group_id),
        )
        logger.info(
            f"Fetched group {group_id}: {len(snapshot.members)} members, "
            f"{len(snapshot.expenses)} expenses, {len(snapshot.payments)} payments"
        )
        return snapshot

    def create_payment(self, payment: Payment) -> Payment:
        """
        Record a payment in the store.

        Returns:
            The payment as stored (with the id assigned by the store)
        """
        body = {
            "group_id": payment.group_id,
            "payer_id": payment.payer_id,
            "recipient_id": payment.recipient_id,
            "amount": str(from_minor_units(payment.amount, payment.currency)),
            "currency": payment.currency,
            "payment_date": payment.date.isoformat(),
            "notes": payment.description or None,
        }
        if payment.id:
            body["id"] = payment.id

        logger.debug(f"Payment payload: {body}")

        try:
            response = self.client.post(
                "/payments",
                json=body,
                headers={"Prefer": "return=representation"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Store API error: {e}")
            logger.error(f"Response body: {e.response.text}")
            raise StoreAPIError(f"Failed to record payment: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error recording payment: {e}")
            raise StoreAPIError(f"Failed to record payment: {e}") from e

        rows = response.json()
        created = self._parse_payment(rows[0])
        logger.info(f"Recorded payment {created.id}")
        return created

    @staticmethod
    def _parse_shares(
        expense_id: str,
        amount: Decimal,
        shares: list[tuple[str, Decimal]],
        currency: str,
    ) -> tuple[int, list[ParticipantShare]]:
        """
        Convert an expense amount and its shares to minor units.

        The store keeps shares with two decimals even for currencies without
        a minor unit (a ₫100,000 split three ways is stored as
        33333.34/33333.33/33333.33). Rounding each share on its own would
        leave them off the total, so when the stored shares add up to the
        stored amount the residual goes to the largest share. Shares that
        never matched their amount are kept as they are.
        """
        total = to_minor_units(amount, currency)
        converted = [
            [member_id, to_minor_units(share, currency)] for member_id, share in shares
        ]

        if converted and sum(share for _, share in shares) == amount:
            residual = total - sum(share for _, share in converted)
            if residual != 0:
                largest = max(converted, key=lambda item: item[1])
                largest[1] += residual
                logger.debug(
                    f"Applied rounding adjustment of {residual} to {largest[0]} "
                    f"in expense {expense_id}"
                )

        return total, [
            ParticipantShare(member_id=member_id, share_amount=share)
            for member_id, share in converted
        ]

    @staticmethod
    def _parse_payment(row: dict[str, Any]) -> Payment:
        currency = row["currency"]
        return Payment(
            id=row["id"],
            group_id=row["group_id"],
            payer_id=row["payer_id"],
            recipient_id=row["recipient_id"],
            amount=to_minor_units(Decimal(str(row["amount"])), currency),
            currency=currency,
            description=row.get("notes") or "",
            date=date.fromisoformat(row["payment_date"]),
        )
