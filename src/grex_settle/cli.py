"""CLI for grex-settle using Typer."""

import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import load_settings
from .currency import decimal_places, format_amount
from .db import Database
from .export import balance_status
from .models import BalanceReport, GroupSnapshot, GroupSummary
from .rates import RateLookup
from .service import GroupBalanceService, load_snapshot_file
from .splitter import build_participant_shares
from .ui import confirm_settlement, select_suggestion_interactive

app = typer.Typer(
    name="grex-settle",
    help="Compute group balances and settlement plans",
)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def format_balance(amount: int, currency: str, use_color: bool = True) -> str:
    """
    Format a balance with sign and color.

    Positive (owed to the member) is green with a leading +,
    negative (member owes) is red, zero is dim.
    """
    formatted = format_amount(amount, currency, show_sign=True)
    if not use_color:
        return formatted
    if amount > 0:
        return f"[green]{formatted}[/green]"
    if amount < 0:
        return f"[red]{formatted}[/red]"
    return f"[dim]{formatted}[/dim]"


def _load_group(
    service: GroupBalanceService, file: Path | None, group_id: str | None
) -> tuple[GroupSnapshot, RateLookup]:
    """Load a snapshot from a file or from the store."""
    if (file is None) == (group_id is None):
        raise typer.BadParameter("Pass exactly one of --file or --group-id")

    if file is not None:
        snapshot, rates = load_snapshot_file(file)
        return snapshot, service.build_rate_lookup(rates)

    console.print(f"\n[bold blue]Fetching group {group_id}...[/bold blue]")
    return service.load_snapshot(group_id), service.build_rate_lookup()


def display_balances(snapshot: GroupSnapshot, report: BalanceReport):
    """Display member balances in a table."""

    table = Table(title="Balances", show_header=True, header_style="bold magenta")
    table.add_column("Member", style="cyan")
    table.add_column("Email", style="dim")
    table.add_column("Balance", justify="right")
    table.add_column("Status")

    # Creditors first, then debtors, settled members last
    ordered = sorted(report.balances.items(), key=lambda item: (-item[1], item[0]))
    for member_id, amount in ordered:
        member = snapshot.member(member_id)
        table.add_row(
            member.display_name if member else member_id,
            member.email if member else "",
            format_balance(amount, report.currency),
            balance_status(amount),
        )

    console.print()
    console.print(table)
    console.print(f"  Total: {format_amount(report.total, report.currency)}")

    if report.total == 0:
        console.print("  [green]✓ Balances sum to zero[/green]")
    else:
        console.print(
            "  [red]✗ Balances do not sum to zero; some expense shares "
            "do not match their amounts[/red]"
        )

    if report.has_mixed_currency_warning:
        console.print(
            f"\n[yellow]⚠️  This group has mixed currencies that cannot be fully "
            f"reconciled: {len(report.unresolved_expense_ids)} expenses and "
            f"{len(report.unresolved_payment_ids)} payments were left out "
            f"(no exchange rate to {report.currency}).[/yellow]"
        )


def display_plan(snapshot: GroupSnapshot, summary: GroupSummary):
    """Display the settlement plan in a table."""
    if not summary.plan:
        console.print("\n[green]✓ Everyone is settled up. No payments needed.[/green]")
        return

    table = Table(title="Settlement Plan", show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=4)
    table.add_column("From", style="red")
    table.add_column("To", style="green")
    table.add_column("Amount", justify="right")

    for idx, suggestion in enumerate(summary.plan, start=1):
        table.add_row(
            str(idx),
            snapshot.display_name(suggestion.payer_id),
            snapshot.display_name(suggestion.recipient_id),
            format_amount(suggestion.amount, suggestion.currency or summary.report.currency),
        )

    console.print()
    console.print(table)
    console.print(
        f"  {len(summary.plan)} payments settle "
        f"{summary.report.nonzero_count()} members"
    )


@app.command()
def balances(
    file: Optional[Path] = typer.Option(
        None, "--file", "-f", exists=True, dir_okay=False, help="Group snapshot JSON file"
    ),
    group_id: Optional[str] = typer.Option(None, "--group-id", "-g", help="Group ID in the store"),
    save: bool = typer.Option(False, "--save", help="Save the result to the balance history"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Show each member's net balance in the group currency.

    Positive balances are owed to the member, negative balances are owed by
    the member.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = GroupBalanceService(settings, db)

        snapshot, rate_lookup = _load_group(service, file, group_id)
        # Balances are shown even when the data is too inconsistent to plan
        report = service.compute_report(snapshot, rate_lookup)
        display_balances(snapshot, report)

        if save:
            service.record_summary(service.summarize(snapshot, rate_lookup))
            console.print("\n[green]✓ Saved to balance history[/green]")

    except typer.BadParameter:
        raise
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "service" in locals():
            service.close()
        if "db" in locals():
            db.close()


@app.command()
def plan(
    file: Optional[Path] = typer.Option(
        None, "--file", "-f", exists=True, dir_okay=False, help="Group snapshot JSON file"
    ),
    group_id: Optional[str] = typer.Option(None, "--group-id", "-g", help="Group ID in the store"),
    show_balances: bool = typer.Option(
        False, "--balances", "-b", help="Also show member balances"
    ),
    save: bool = typer.Option(False, "--save", help="Save the result to the balance history"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Show the suggested payments that settle everyone up.

    The plan matches the largest debtor with the largest creditor until all
    balances are zero, so it never needs more than one payment fewer than
    the number of unsettled members.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = GroupBalanceService(settings, db)

        snapshot, rate_lookup = _load_group(service, file, group_id)
        summary = service.summarize(snapshot, rate_lookup)

        if show_balances:
            display_balances(snapshot, summary.report)
        elif summary.report.has_mixed_currency_warning:
            console.print(
                "\n[yellow]⚠️  Mixed currencies: some transactions could not be "
                "converted and are not part of this plan.[/yellow]"
            )

        display_plan(snapshot, summary)

        if save:
            service.record_summary(summary)
            console.print("\n[green]✓ Saved to balance history[/green]")

    except typer.BadParameter:
        raise
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "service" in locals():
            service.close()
        if "db" in locals():
            db.close()


@app.command()
def settle(
    group_id: str = typer.Option(..., "--group-id", "-g", help="Group ID in the store"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Record one suggested settlement as a real payment.

    Pick a suggestion from the current plan; it is recorded in the store and
    the plan is recomputed.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = GroupBalanceService(settings, db)

        snapshot, rate_lookup = _load_group(service, None, group_id)
        summary = service.summarize(snapshot, rate_lookup)
        display_plan(snapshot, summary)

        if not summary.plan:
            return

        suggestion = select_suggestion_interactive(snapshot, summary.plan)
        if suggestion is None:
            console.print("[yellow]No settlement selected.[/yellow]")
            return

        if not yes and not confirm_settlement(snapshot, suggestion):
            console.print("[yellow]Cancelled.[/yellow]")
            return

        console.print("\n[bold blue]Recording payment...[/bold blue]")
        payment, updated = service.record_settlement(snapshot, suggestion)
        console.print(f"[green]✓ Payment recorded successfully ({payment.id})[/green]")

        new_summary = service.summarize(updated, rate_lookup)
        service.record_summary(new_summary)
        display_plan(updated, new_summary)

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "service" in locals():
            service.close()
        if "db" in locals():
            db.close()


@app.command()
def history(
    group_id: str = typer.Option(..., "--group-id", "-g", help="Group ID"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of entries to show"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show saved balance snapshots for a group, newest first."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = GroupBalanceService(settings, db)

        records = service.get_history(group_id, limit=limit)
        if not records:
            console.print(f"[yellow]No balance history for group {group_id}.[/yellow]")
            return

        table = Table(title="Balance History", show_header=True, header_style="bold magenta")
        table.add_column("Saved", style="dim")
        table.add_column("Unsettled", justify="right")
        table.add_column("Outstanding", justify="right")
        table.add_column("Payments", justify="right")
        table.add_column("Warning", style="yellow")

        for record in records:
            outstanding = sum(amount for amount in record.balances.values() if amount > 0)
            table.add_row(
                record.created_at.strftime("%Y-%m-%d %H:%M"),
                str(sum(1 for amount in record.balances.values() if amount != 0)),
                format_amount(outstanding, record.currency),
                str(len(record.plan)),
                "mixed currencies" if record.has_mixed_currency_warning else "",
            )

        console.print()
        console.print(table)

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "service" in locals():
            service.close()
        if "db" in locals():
            db.close()


@app.command()
def export(
    file: Optional[Path] = typer.Option(
        None, "--file", "-f", exists=True, dir_okay=False, help="Group snapshot JSON file"
    ),
    group_id: Optional[str] = typer.Option(None, "--group-id", "-g", help="Group ID in the store"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", dir_okay=False, help="CSV file to write"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Export a group's members, expenses, payments and balances to CSV.

    Defaults to <group name>_export.csv in the current directory.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = GroupBalanceService(settings, db)

        snapshot, rate_lookup = _load_group(service, file, group_id)
        path = output or Path(f"{snapshot.group.name or snapshot.group.id}_export.csv")

        report = service.export_csv(snapshot, path, rate_lookup)

        console.print(
            f"\n[green]✓ Exported {len(snapshot.expenses)} expenses, "
            f"{len(snapshot.payments)} payments and {len(report.balances)} balances "
            f"to {path}[/green]"
        )
        if report.has_mixed_currency_warning:
            console.print(
                "[yellow]⚠️  Some transactions could not be converted and are "
                "not part of the exported balances.[/yellow]"
            )

    except typer.BadParameter:
        raise
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "service" in locals():
            service.close()
        if "db" in locals():
            db.close()


@app.command()
def split(
    amount: int = typer.Argument(..., help="Amount in minor currency units"),
    participants: Optional[list[str]] = typer.Option(
        None, "--participant", "-p", help="Participant ID (equal split)"
    ),
    weights: Optional[list[str]] = typer.Option(
        None, "--weight", "-w", help="ID=value for percentage, shares or exact splits"
    ),
    method: str = typer.Option("equal", "--method", "-m", help="equal|percentage|shares|exact"),
    currency: Optional[str] = typer.Option(
        None, "--currency", "-c", help="Currency code (defaults to DEFAULT_CURRENCY)"
    ),
):
    """Preview how an expense amount is split among participants."""
    try:
        currency = currency or load_settings().default_currency
        decimal_places(currency)

        parsed_weights = {}
        for entry in weights or []:
            member_id, sep, value = entry.partition("=")
            if not sep:
                raise typer.BadParameter(f"Weight {entry!r} must look like ID=value")
            parsed_weights[member_id] = value

        shares = build_participant_shares(
            method,  # type: ignore[arg-type]
            amount,
            participant_ids=participants or [],
            weights=parsed_weights or None,
        )
    except typer.BadParameter:
        raise
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    table = Table(title=f"{method.title()} split", show_header=True, header_style="bold magenta")
    table.add_column("Participant", style="cyan")
    table.add_column("Share", justify="right")
    for share in shares:
        table.add_row(share.member_id, format_amount(share.share_amount, currency))

    console.print(table)
    console.print(f"  Total: {format_amount(sum(s.share_amount for s in shares), currency)}")


if __name__ == "__main__":
    app()
