"""CLI commands for CareOS."""

import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from care_os import __version__
from care_os.billing.errors import SuggestionError

app = typer.Typer(
    name="care-os",
    help="Billing package suggestions for remote care programs",
    add_completion=False,
)
console = Console()


@asynccontextmanager
async def engine_scope():
    """Yield a suggestion engine bound to a session committed on exit."""
    from care_os.billing.engine import PackageSuggestionEngine
    from care_os.core.database import session_scope

    async with session_scope() as session:
        yield PackageSuggestionEngine.from_session(session)


def _parse_uuid(value: str, label: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        console.print(f"[red]Invalid {label}: {value}[/red]")
        raise typer.Exit(1)


def _run(coro):
    try:
        return asyncio.run(coro)
    except SuggestionError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _suggestion_dict(suggestion) -> dict:
    return {
        "id": str(suggestion.id),
        "patient_id": str(suggestion.patient_id),
        "package_template_id": str(suggestion.package_template_id),
        "package": (suggestion.meta or {}).get("package_name"),
        "match_score": suggestion.match_score,
        "matched_diagnoses": suggestion.matched_diagnoses,
        "suggested_programs": suggestion.suggested_programs,
        "status": suggestion.status,
        "created_enrollment_ids": suggestion.created_enrollment_ids,
        "rejection_reason": suggestion.rejection_reason,
    }


def _display_suggestions(suggestions, title: str) -> None:
    if not suggestions:
        console.print("[yellow]No suggestions[/yellow]")
        return
    table = Table(title=title)
    table.add_column("ID")
    table.add_column("Package")
    table.add_column("Score", justify="right")
    table.add_column("Programs")
    table.add_column("Status")
    for s in suggestions:
        programs = (s.suggested_programs or {}).get("programs") or []
        table.add_row(
            str(s.id),
            (s.meta or {}).get("package_name", ""),
            str(s.match_score),
            ", ".join(p["program_type"] for p in programs),
            s.status,
        )
    console.print(table)


@app.command("init-db")
def init_db(
    no_seed: bool = typer.Option(False, "--no-seed", help="Create tables without the standard catalog"),
):
    """Create tables and seed the standard package catalog."""
    from care_os.core.database import init_db as _init_db

    asyncio.run(_init_db(seed=not no_seed))
    console.print("[green]Database initialized[/green]")


@app.command()
def packages(
    organization_id: str = typer.Argument(..., help="Organization ID"),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Filter by category"),
    standardized: Optional[bool] = typer.Option(
        None, "--standardized/--custom", help="Only platform or only organization templates"
    ),
    include_inactive: bool = typer.Option(False, "--include-inactive", help="Include inactive templates"),
):
    """List billing package templates visible to an organization."""
    org_id = _parse_uuid(organization_id, "organization ID")

    async def _list():
        async with engine_scope() as engine:
            return await engine.catalog.list_templates(
                org_id,
                category=category,
                is_standardized=standardized,
                is_active=None if include_inactive else True,
            )

    templates = _run(_list())
    table = Table(title=f"Billing Packages ({len(templates)})")
    table.add_column("Code")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Scope")
    table.add_column("Used", justify="right")
    for t in templates:
        table.add_row(
            t.code,
            t.name,
            t.category,
            "platform" if t.organization_id is None else "organization",
            str(t.usage_count),
        )
    console.print(table)


@app.command()
def suggest(
    patient_id: str = typer.Argument(..., help="Patient ID"),
    organization_id: str = typer.Argument(..., help="Organization ID"),
    min_score: Optional[int] = typer.Option(None, "--min-score", help="Minimum match score (0-100)"),
    max_suggestions: Optional[int] = typer.Option(None, "--max", help="Maximum suggestions"),
    source_type: Optional[str] = typer.Option(None, "--source-type", help="Source recorded on new suggestions"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Match a patient against the package catalog and record suggestions."""
    from care_os.billing.schemas import SuggestOptions

    pid = _parse_uuid(patient_id, "patient ID")
    oid = _parse_uuid(organization_id, "organization ID")
    options = SuggestOptions(
        min_match_score=min_score,
        max_suggestions=max_suggestions,
        source_type=source_type,
    )

    async def _suggest():
        async with engine_scope() as engine:
            return await engine.suggest_billing_packages(pid, oid, options)

    suggestions = _run(_suggest())
    if output_json:
        console.print(json.dumps([_suggestion_dict(s) for s in suggestions], indent=2))
    else:
        _display_suggestions(suggestions, "Package Suggestions")


@app.command()
def pending(
    patient_id: str = typer.Argument(..., help="Patient ID"),
    organization_id: str = typer.Argument(..., help="Organization ID"),
):
    """List pending suggestions for a patient."""
    pid = _parse_uuid(patient_id, "patient ID")
    oid = _parse_uuid(organization_id, "organization ID")

    async def _pending():
        async with engine_scope() as engine:
            return await engine.get_pending_suggestions(pid, oid)

    _display_suggestions(_run(_pending()), "Pending Suggestions")


@app.command()
def history(
    organization_id: str = typer.Argument(..., help="Organization ID"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="PENDING, APPROVED or REJECTED"),
    limit: int = typer.Option(50, "--limit", help="Page size"),
    offset: int = typer.Option(0, "--offset", help="Rows to skip"),
):
    """List an organization's suggestions, newest first."""
    oid = _parse_uuid(organization_id, "organization ID")

    async def _history():
        async with engine_scope() as engine:
            return await engine.get_suggestion_history(
                oid, status=status.upper() if status else None, limit=limit, offset=offset
            )

    page = _run(_history())
    _display_suggestions(page.suggestions, "Suggestion History")
    console.print(f"Showing {len(page.suggestions)} of {page.total} (offset {page.offset})")


@app.command()
def approve(
    suggestion_id: str = typer.Argument(..., help="Suggestion ID"),
    reviewer_id: str = typer.Argument(..., help="Reviewing clinician ID"),
    program: Optional[str] = typer.Option(None, "--program", "-p", help="Enroll only this program type"),
    clinician: Optional[str] = typer.Option(None, "--clinician", help="Clinician for the enrollments"),
    start_date: Optional[datetime] = typer.Option(None, "--start-date", help="Enrollment start date"),
):
    """Approve a suggestion and create its enrollments."""
    from care_os.billing.schemas import ApproveOptions

    sid = _parse_uuid(suggestion_id, "suggestion ID")
    rid = _parse_uuid(reviewer_id, "reviewer ID")
    options = ApproveOptions(
        clinician_id=_parse_uuid(clinician, "clinician ID") if clinician else None,
        start_date=start_date,
        selected_program_type=program,
    )

    async def _approve():
        async with engine_scope() as engine:
            return await engine.approve_suggestion(sid, rid, options)

    suggestion = _run(_approve())
    created = suggestion.created_enrollment_ids or []
    console.print(f"[green]Suggestion approved[/green] - {len(created)} enrollment(s) created")
    for warning in (suggestion.meta or {}).get("approval_warnings", []):
        console.print(f"[yellow]Warning:[/yellow] {warning['detail']}")


@app.command()
def reject(
    suggestion_id: str = typer.Argument(..., help="Suggestion ID"),
    reviewer_id: str = typer.Argument(..., help="Reviewing clinician ID"),
    reason: str = typer.Option(..., "--reason", "-r", help="Reason for rejection"),
):
    """Reject a suggestion."""
    sid = _parse_uuid(suggestion_id, "suggestion ID")
    rid = _parse_uuid(reviewer_id, "reviewer ID")

    async def _reject():
        async with engine_scope() as engine:
            return await engine.reject_suggestion(sid, rid, reason)

    _run(_reject())
    console.print("[green]Suggestion rejected[/green]")


@app.command()
def version():
    """Show version information."""
    console.print(f"CareOS v{__version__}")
