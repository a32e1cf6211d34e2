"""Shared Rich display functions for boxes, exports and transactions.

Provides reusable table builders and summary printers used across CLI
commands (list, export, exports, pm).
"""

from rich.table import Table

from pkgbridge.core.transaction import TransactionReport, TxState
from pkgbridge.models.box import Box
from pkgbridge.models.export import ExportOutcome, ExportRecord, OutcomeStatus, summarize_outcomes
from pkgbridge.utils.formatting import console, create_table, print_info, print_warning

_STATUS_STYLES: dict[OutcomeStatus, str] = {
    OutcomeStatus.EXPORTED: "exported",
    OutcomeStatus.COLLIDED: "collided",
    OutcomeStatus.UNCHANGED: "muted",
    OutcomeStatus.SKIPPED: "skipped",
    OutcomeStatus.FAILED: "error",
}


def create_boxes_table(boxes: list[Box]) -> Table:
    """Create a table of discovered boxes."""
    table = create_table("Boxes")
    table.add_column("", width=2, justify="center")
    table.add_column("Name", no_wrap=True)
    table.add_column("Family")
    table.add_column("Status", style="muted")
    table.add_column("Image", style="muted", overflow="ellipsis")

    for box in boxes:
        if box.reachable:
            icon = "[box_live]●[/]"
            name = f"[box_live]{box.name}[/]"
        else:
            icon = "[box_down]○[/]"
            name = f"[box_down]{box.name}[/]"
        table.add_row(icon, name, box.family.value, box.status or "-", box.image or "-")
    return table


def create_outcomes_table(outcomes: list[ExportOutcome], dry_run: bool = False) -> Table:
    """Create a table of per-artifact export results.

    Args:
        outcomes: Export outcomes to display.
        dry_run: Whether nothing was written (changes the title).

    Returns:
        Rich Table with one row per artifact.
    """
    table = create_table("Planned Exports (Dry Run)" if dry_run else "Exports")
    table.add_column("Status", width=10)
    table.add_column("Kind", width=8)
    table.add_column("Package", no_wrap=True)
    table.add_column("Source", style="muted")
    table.add_column("Host path", style="path")

    for outcome in outcomes:
        style = _STATUS_STYLES[outcome.status]
        detail = outcome.host_path or f"[muted]{outcome.message or ''}[/]"
        table.add_row(
            f"[{style}]{outcome.status.value}[/]",
            outcome.artifact.kind.value,
            outcome.artifact.package,
            outcome.artifact.path,
            detail,
        )
    return table


def create_records_table(records: list[ExportRecord]) -> Table:
    """Create a table of persisted export records."""
    table = create_table("Exported Artifacts")
    table.add_column("Host path", style="path", no_wrap=True)
    table.add_column("Box")
    table.add_column("Package", style="package.name")
    table.add_column("Kind", width=8)
    table.add_column("Source", style="muted")
    table.add_column("Exported", style="muted")

    for record in records:
        table.add_row(
            record.host_path,
            record.box,
            record.package,
            record.kind.value,
            record.source_path,
            record.exported_at[:19].replace("T", " "),
        )
    return table


def print_export_summary(outcomes: list[ExportOutcome]) -> None:
    """Print a one-line export summary."""
    counts = summarize_outcomes(outcomes)
    parts = [
        f"[exported]{counts['exported']} exported[/]",
        f"[muted]{counts['unchanged']} unchanged[/]",
        f"[collided]{counts['collided']} collided[/]",
        f"[skipped]{counts['skipped']} skipped[/]",
        f"[error]{counts['failed']} failed[/]" if counts["failed"] else "0 failed",
    ]
    console.print("Summary: " + ", ".join(parts))


def print_transaction_report(report: TransactionReport) -> None:
    """Print what a transaction changed and exported.

    Scan problems and an abort reason are printed as warnings; the export
    table is only shown when there is something to show.
    """
    diff = report.diff
    if diff.changes:
        print_info(
            f"{report.box}: {len(diff.new)} new, {len(diff.upgraded)} upgraded package(s)"
        )

    for note in report.partials:
        print_warning(note)

    if report.outcomes:
        console.print(create_outcomes_table(report.outcomes))
        print_export_summary(report.outcomes)
    elif report.state == TxState.COMMITTED and diff.changes:
        print_info("No exportable commands or launchers in the changed packages.")

    if report.state == TxState.ABORTED and report.error:
        print_warning(f"Transaction aborted: {report.error}")
