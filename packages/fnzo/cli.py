"""CLI for the ``fnzo`` package.

A Typer console interface over the services in ``fnzo.api``. Environment
variables (the Supabase URL/key, or ``DATABASE_URL`` + ``FNZO_USER_ID``) are
loaded from a local ``.env`` via ``python-dotenv`` in the root callback
before any command runs. Business logic lives in the services; commands only
parse input, call one service method and render the result with Rich.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Annotated

import pydantic
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .api import Services, build_services
from .csv_io import export_filename, export_transactions, import_transactions, parse_date
from .errors import FnzoError, ValidationError
from .events import EventName
from .logging_setup import configure_logging
from .models import CategoryCreate, CategoryUpdate, Kind, TemplateCreate, Transaction
from .rest_store import RestStore
from .term_ui import confirm, select_replacement_category
from .transactions import format_currency

console = Console()

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Track transactions, categories and templates in a Supabase/Postgres ledger. "
        "Loads connection settings from a local .env before running."
    ),
)
categories_app = typer.Typer(no_args_is_help=True, help="Manage categories.")
transactions_app = typer.Typer(no_args_is_help=True, help="Manage transactions.")
templates_app = typer.Typer(no_args_is_help=True, help="Manage transaction templates.")
csv_app = typer.Typer(no_args_is_help=True, help="Export and import transactions as CSV.")
app.add_typer(categories_app, name="categories")
app.add_typer(transactions_app, name="transactions")
app.add_typer(templates_app, name="templates")
app.add_typer(csv_app, name="csv")


# ---- Small module-level helpers used by CLI commands -------------------------


def _services() -> Services:
    return build_services()


@contextmanager
def _errors() -> Iterator[None]:
    """Print service errors in red and exit 1."""

    try:
        yield
    except FnzoError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        console.print(f"[red]Error:[/red] invalid {loc or 'input'}: {first.get('msg')}")
        raise typer.Exit(1) from e


def _decimal(raw: str, what: str) -> Decimal:
    try:
        return Decimal(raw.strip())
    except InvalidOperation as e:
        raise ValidationError(f"{what} must be a number (got {raw!r})") from e


def _when(raw: str | None) -> datetime:
    if raw is None:
        return datetime.now(UTC)
    parsed = parse_date(raw)
    if parsed is None:
        raise ValidationError(f"Unrecognized date {raw!r}; use YYYY-MM-DD")
    return parsed


def _fmt_date(value: datetime | None) -> str:
    return value.date().isoformat() if value is not None else "-"


def _interactive() -> bool:
    return sys.stdin.isatty()


# ---- login -------------------------------------------------------------------


@app.command("login")
def login_cmd(
    email: Annotated[str, typer.Option(prompt=True, help="Account e-mail")],
    password: Annotated[
        str, typer.Option(prompt=True, hide_input=True, help="Account password")
    ],
) -> None:
    """Sign in to Supabase and remember the session (FNZO_SESSION_FILE)."""

    with _errors():
        services = _services()
        store = services.store
        if not isinstance(store, RestStore):
            console.print("[cyan]Using the local database store; no sign-in needed.[/cyan]")
            return
        session = store.sign_in_with_password(email, password)
        services.guard.invalidate()
        console.print(f"[green]Signed in[/green] as {session.user_id}")


# ---- categories --------------------------------------------------------------


def _category_table(rows, *, title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", overflow="fold")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Spending", justify="right")
    table.add_column("Budget", justify="right")
    table.add_column("Uses", justify="right")
    table.add_column("Last used")
    table.add_column("Default")
    for c in rows:
        table.add_row(
            c.id,
            c.name,
            c.kind.value,
            format_currency(c.spending),
            format_currency(c.budget) if c.budget is not None else "-",
            str(c.usage_count),
            _fmt_date(c.last_used),
            "yes" if c.is_default else "",
        )
    return table


@categories_app.command("list")
def categories_list_cmd(
    kind: Annotated[Kind | None, typer.Option(case_sensitive=False, help="Only this kind")] = None,
) -> None:
    """List categories with computed spending."""

    with _errors():
        rows = _services().categories.get_all_categories_with_spending()
        if kind is not None:
            rows = [c for c in rows if c.kind is kind]
        console.print(_category_table(rows, title="Categories"))


@categories_app.command("recent")
def categories_recent_cmd(
    limit: Annotated[int, typer.Option(min=1, help="How many to show")] = 5,
) -> None:
    """Show recently used categories."""

    with _errors():
        rows = _services().categories.get_recently_used_categories(limit)
        if not rows:
            console.print("No recently used categories.")
            return
        console.print(_category_table(rows, title="Recently used"))


@categories_app.command("add")
def categories_add_cmd(
    name: Annotated[str, typer.Argument(help="Category name")],
    kind: Annotated[Kind, typer.Option(case_sensitive=False, help="expense, income or savings")],
    budget: Annotated[str | None, typer.Option(help="Monthly budget")] = None,
    color: Annotated[str | None, typer.Option(help="Display color, e.g. #10b981")] = None,
    description: Annotated[str | None, typer.Option(help="Free-text description")] = None,
) -> None:
    """Create a category."""

    with _errors():
        create = CategoryCreate(
            name=name,
            kind=kind,
            budget=_decimal(budget, "budget") if budget is not None else None,
            color=color,
            description=description,
        )
        category = _services().categories.add_category(create)
        console.print(f"[green]Added[/green] {category.name} ({category.kind.value}) id={category.id}")


@categories_app.command("update")
def categories_update_cmd(
    category_id: Annotated[str, typer.Argument(help="Category id")],
    name: Annotated[str | None, typer.Option(help="New name (rewrites transactions)")] = None,
    color: Annotated[str | None, typer.Option(help="New display color")] = None,
    description: Annotated[str | None, typer.Option(help="New description")] = None,
) -> None:
    """Update (or rename) a category."""

    fields = {
        k: v
        for k, v in {"name": name, "color": color, "description": description}.items()
        if v is not None
    }
    with _errors():
        if not fields:
            raise ValidationError("Nothing to update; pass --name, --color or --description")
        services = _services()
        old_name: str | None = None

        def _on_update(payload) -> None:
            nonlocal old_name
            if payload.renamed:
                old_name = payload.old_name

        unsubscribe = services.bus.subscribe(EventName.CATEGORY_UPDATED, _on_update)
        try:
            category = services.categories.update_category(category_id, CategoryUpdate(**fields))
        finally:
            unsubscribe()
        if old_name is not None:
            console.print(f"[green]Renamed[/green] {old_name} -> {category.name}")
        else:
            console.print(f"[green]Updated[/green] {category.name}")


@categories_app.command("set-limit")
def categories_set_limit_cmd(
    category_id: Annotated[str, typer.Argument(help="Category id")],
    budget: Annotated[str | None, typer.Argument(help="Monthly budget")] = None,
    clear: Annotated[bool, typer.Option("--clear", help="Remove the budget")] = False,
) -> None:
    """Set or clear a category's monthly budget."""

    with _errors():
        if budget is None and not clear:
            raise ValidationError("Give a budget or --clear")
        value = None if clear else _decimal(budget or "", "budget")
        category = _services().categories.update_category_limit(category_id, value)
        shown = format_currency(category.budget) if category.budget is not None else "none"
        console.print(f"[green]Budget[/green] for {category.name}: {shown}")


@categories_app.command("delete")
def categories_delete_cmd(
    category_id: Annotated[str, typer.Argument(help="Category id")],
    replace_with: Annotated[
        str | None, typer.Option("--replace-with", help="Move transactions to this category id")
    ] = None,
) -> None:
    """Delete a category, moving its transactions to a replacement when it has any."""

    with _errors():
        services = _services()
        engine = services.categories
        try:
            engine.delete_category(category_id, replace_with)
        except ValidationError as e:
            if replace_with is not None or "replacement" not in str(e) or not _interactive():
                raise
            everything = engine.get_categories()
            doomed = next(c for c in everything if c.id == category_id)
            options = {
                c.name: c.id for c in everything if c.kind is doomed.kind and c.id != doomed.id
            }
            console.print(f"[yellow]{doomed.name} has transactions.[/yellow]")
            choice = select_replacement_category(list(options))
            if choice is None:
                raise ValidationError("Deletion canceled") from e
            engine.delete_category(category_id, options[choice])
            console.print(f"[green]Deleted[/green] {doomed.name}; transactions moved to {choice}")
            return
        console.print(f"[green]Deleted[/green] category {category_id}")


@categories_app.command("merge")
def categories_merge_cmd(
    source_id: Annotated[str, typer.Argument(help="Category to fold away")],
    target_id: Annotated[str, typer.Argument(help="Category that receives the transactions")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
) -> None:
    """Merge one category into another of the same kind."""

    with _errors():
        if not yes and _interactive() and not confirm(f"Merge {source_id} into {target_id}?"):
            console.print("Merge canceled.")
            raise typer.Exit(1)
        merged = _services().categories.merge_categories(source_id, target_id)
        console.print(f"[green]Merged[/green] into {merged.name} (uses={merged.usage_count})")


# ---- transactions ------------------------------------------------------------


@transactions_app.command("list")
def transactions_list_cmd(
    kind: Annotated[Kind | None, typer.Option(case_sensitive=False, help="Only this kind")] = None,
    limit: Annotated[int | None, typer.Option(min=1, help="Show at most N rows")] = None,
) -> None:
    """List transactions, newest first."""

    with _errors():
        rows = _services().transactions.get_transactions()
        if kind is not None:
            rows = [t for t in rows if t.kind is kind]
        if limit is not None:
            rows = rows[:limit]
        table = Table(title="Transactions")
        table.add_column("ID", overflow="fold")
        table.add_column("Date")
        table.add_column("Kind")
        table.add_column("Category")
        table.add_column("Amount", justify="right")
        table.add_column("Notes")
        for t in rows:
            table.add_row(
                t.id or "",
                _fmt_date(t.date),
                t.kind.value,
                t.category,
                format_currency(t.amount),
                t.notes,
            )
        console.print(table)


@transactions_app.command("add")
def transactions_add_cmd(
    kind: Annotated[Kind, typer.Option(case_sensitive=False, help="expense, income or savings")],
    category: Annotated[str, typer.Option(help="Category name")],
    amount: Annotated[str, typer.Option(help="Positive amount")],
    date: Annotated[str | None, typer.Option(help="YYYY-MM-DD (default: today)")] = None,
    notes: Annotated[str, typer.Option(help="Free-text notes")] = "",
) -> None:
    """Record a transaction."""

    with _errors():
        tx = Transaction(
            date=_when(date),
            kind=kind,
            category=category,
            amount=_decimal(amount, "amount"),
            notes=notes,
        )
        created = _services().transactions.add_transaction(tx)
        console.print(
            f"[green]Added[/green] {created.kind.value} {format_currency(created.amount)} "
            f"in {created.category} id={created.id}"
        )


@transactions_app.command("delete")
def transactions_delete_cmd(
    transaction_id: Annotated[str, typer.Argument(help="Transaction id")],
) -> None:
    """Delete a transaction permanently."""

    with _errors():
        _services().transactions.delete_transaction(transaction_id)
        console.print(f"[green]Deleted[/green] transaction {transaction_id}")


# ---- templates ---------------------------------------------------------------


@templates_app.command("list")
def templates_list_cmd(
    defaults_only: Annotated[
        bool, typer.Option("--defaults-only", help="Only quick-entry templates")
    ] = False,
) -> None:
    """List transaction templates."""

    with _errors():
        svc = _services().templates
        rows = svc.get_default_templates() if defaults_only else svc.get_templates()
        table = Table(title="Templates")
        table.add_column("ID", overflow="fold")
        table.add_column("Name")
        table.add_column("Kind")
        table.add_column("Category")
        table.add_column("Amount", justify="right")
        table.add_column("Default")
        for t in rows:
            table.add_row(
                t.id,
                t.name,
                t.kind.value,
                t.category,
                format_currency(t.amount),
                "yes" if t.is_default else "",
            )
        console.print(table)


@templates_app.command("add")
def templates_add_cmd(
    name: Annotated[str, typer.Argument(help="Template name")],
    kind: Annotated[Kind, typer.Option(case_sensitive=False, help="expense, income or savings")],
    category: Annotated[str, typer.Option(help="Category name")],
    amount: Annotated[str, typer.Option(help="Default amount")] = "0",
    notes: Annotated[str, typer.Option(help="Default notes")] = "",
    default: Annotated[bool, typer.Option("--default", help="Show in quick entry")] = False,
) -> None:
    """Create a template."""

    with _errors():
        template = _services().templates.create_template(
            TemplateCreate(
                name=name,
                kind=kind,
                category=category,
                amount=_decimal(amount, "amount"),
                notes=notes,
                is_default=default,
            )
        )
        console.print(f"[green]Added[/green] template {template.name} id={template.id}")


@templates_app.command("delete")
def templates_delete_cmd(
    template_id: Annotated[str, typer.Argument(help="Template id")],
) -> None:
    """Delete a template."""

    with _errors():
        template = _services().templates.delete_template(template_id)
        console.print(f"[green]Deleted[/green] template {template.name}")


@templates_app.command("apply")
def templates_apply_cmd(
    template_id: Annotated[str, typer.Argument(help="Template id")],
    amount: Annotated[str | None, typer.Option(help="Override the template amount")] = None,
    date: Annotated[str | None, typer.Option(help="YYYY-MM-DD (default: today)")] = None,
) -> None:
    """Record a transaction from a template."""

    with _errors():
        services = _services()
        template = next(
            (t for t in services.templates.get_templates() if t.id == template_id), None
        )
        if template is None:
            raise ValidationError(f"Template {template_id} not found")
        tx = services.templates.to_transaction(
            template,
            _when(date),
            amount=_decimal(amount, "amount") if amount is not None else None,
        )
        created = services.transactions.add_transaction(tx)
        console.print(
            f"[green]Added[/green] {created.kind.value} {format_currency(created.amount)} "
            f"in {created.category} from template {template.name}"
        )


# ---- csv ---------------------------------------------------------------------


@csv_app.command("export")
def csv_export_cmd(
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Target file (default: dated name)")
    ] = None,
) -> None:
    """Export every transaction to a CSV file."""

    with _errors():
        services = _services()
        rows = services.transactions.get_transactions()
        if not rows:
            raise ValidationError("No data to export; add some transactions first")
        target = output or Path.cwd() / export_filename(services.settings.product_name)
        with target.open("w", encoding="utf-8", newline="") as f:
            count = export_transactions(rows, f)
        console.print(f"[green]Exported[/green] {count} transactions to {target}")


@csv_app.command("import")
def csv_import_cmd(
    csv_path: Annotated[Path, typer.Argument(help="CSV file with Date,Type,Category,Amount[,Notes]")],
) -> None:
    """Import transactions from a CSV file."""

    with _errors():
        if not csv_path.exists():
            raise ValidationError(f"File not found: {csv_path}")
        services = _services()
        with csv_path.open(encoding="utf-8-sig", newline="") as f:
            result = import_transactions(
                f,
                services.transactions,
                row_delay=services.settings.import_row_delay_sec,
            )
        new_count = sum(len(v) for v in result.new_categories.values())
        console.print(
            f"Imported {result.imported} transactions. {result.skipped} were skipped. "
            f"{new_count} new categories added."
        )
        for skipped in result.skipped_rows:
            console.print(f"  [yellow]line {skipped.line}[/yellow]: {skipped.reason}")


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging once.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover
    app()
