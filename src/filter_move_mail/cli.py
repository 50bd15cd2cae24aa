"""Command-line interface for filter-move-mail."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from filter_move_mail.config import Settings
from filter_move_mail.errors import ConfigImportError, FilterMoveMailError
from filter_move_mail.logging import setup_logging

app = typer.Typer(
    name="filter-move-mail",
    help="Sort email into folders with ordered move rules",
    no_args_is_help=True,
)
console = Console()

# Sub-command groups
rules_app = typer.Typer(help="Manage move rules")
config_app = typer.Typer(help="Export and import configuration")

app.add_typer(rules_app, name="rules")
app.add_typer(config_app, name="config")

EXAMPLE_RULES = """# filter-move-mail rules
# Rules are tried in order; the first matching rule decides the destination.

rules:
  - id: filter_newsletters
    name: "Newsletters"
    enabled: true
    match_mode: any
    conditions:
      - field: subject
        operator: contains
        value: "newsletter"
      - field: body
        operator: contains
        value: "unsubscribe"
    action:
      destination_account_id: "personal"
      destination_path: "/Newsletters"
    apply_on_new_message: true
    apply_manually: true
    account_scope:
      all_accounts: true

  - id: filter_unknown_senders
    name: "Unknown senders"
    enabled: false
    match_mode: all
    conditions:
      - field: from
        operator: not_in_addressbook
    action:
      destination_account_id: "personal"
      destination_path: "/Unknown"

settings:
  apply_on_new_message: false
  apply_manually: true
  apply_after_junk: false
  remove_own_emails: true
"""

EXAMPLE_ADDRESS_BOOKS = """# filter-move-mail address books

books:
  - id: personal
    name: Personal
    contacts:
      - DisplayName: "Jane Doe"
        PrimaryEmail: "jane@example.com"
"""


def get_settings() -> Settings:
    """Load application settings."""
    return Settings()


def _init_logging(settings: Settings) -> None:
    setup_logging(
        log_dir=settings.log_dir,
        log_level=settings.log_level,
        max_bytes=settings.log_rotation_size_mb * 1024 * 1024,
        backup_count=settings.log_backup_count,
    )


def _build(settings: Settings):
    """Wire the Maildir store, address book, rule store and service together."""
    from filter_move_mail.mail.addressbook import YamlAddressBook
    from filter_move_mail.mail.maildir import MaildirStore
    from filter_move_mail.service import FilterService
    from filter_move_mail.storage.store import RuleStore

    mail_store = MaildirStore(
        settings.maildir_root,
        page_size=settings.page_size,
        identities=settings.identities,
    )
    rule_store = RuleStore(settings.rules_path)
    service = FilterService(
        rule_store,
        mail_store,
        mail_store,
        YamlAddressBook(settings.address_book_path),
    )
    return service, mail_store


def _parse_folder(value: str):
    from filter_move_mail.mail.messages import FolderRef

    account_id, sep, path = value.partition(":")
    if not sep or not account_id or not path:
        raise typer.BadParameter(f"Expected ACCOUNT:PATH, got '{value}'")
    return FolderRef(account_id, path if path.startswith("/") else f"/{path}", account_name=account_id)


def _print_result(result) -> None:
    if not result.details and not result.failed_folders:
        console.print("[yellow]No applicable rules[/yellow]")
        return

    table = Table(title="Run Results")
    table.add_column("Folder", style="dim")
    table.add_column("Rule", style="cyan")
    table.add_column("Matched", justify="right")
    table.add_column("Destination", style="green")

    for detail in result.details:
        table.add_row(
            detail.folder or "",
            detail.rule_name,
            str(detail.matched_count),
            detail.destination_path or "",
        )

    console.print(table)
    console.print(f"\n[bold]{result.total_moved}[/bold] message(s) moved")
    for destination in result.failed_destinations:
        console.print(f"[red]Move failed for {destination.key}[/red]")
    for folder in result.failed_folders:
        console.print(f"[red]Could not scan {folder.label}[/red]")


@app.command()
def version() -> None:
    """Show version information."""
    from filter_move_mail import __version__

    console.print(f"filter-move-mail v{__version__}")


@app.command()
def init(
    config_dir: Annotated[
        Path | None,
        typer.Option("--config-dir", "-c", help="Configuration directory"),
    ] = None,
) -> None:
    """Initialize configuration directory with example files."""
    settings = get_settings()
    if config_dir:
        settings.config_dir = config_dir

    settings.ensure_config_dir()

    if not settings.rules_path.exists():
        settings.rules_path.write_text(EXAMPLE_RULES)
        console.print(f"[green]Created[/green] {settings.rules_path}")
    else:
        console.print(f"[dim]Exists[/dim] {settings.rules_path}")

    if not settings.address_book_path.exists():
        settings.address_book_path.write_text(EXAMPLE_ADDRESS_BOOKS)
        console.print(f"[green]Created[/green] {settings.address_book_path}")
    else:
        console.print(f"[dim]Exists[/dim] {settings.address_book_path}")


# === Rules Commands ===


@rules_app.command("list")
def rules_list() -> None:
    """List all configured rules in priority order."""
    from filter_move_mail.storage.store import RuleStore

    settings = get_settings()
    try:
        rules = RuleStore(settings.rules_path).load_rules()
    except FilterMoveMailError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1) from e

    if not rules:
        console.print("[yellow]No rules configured[/yellow]")
        console.print("Run [bold]filter-move-mail init[/bold] to create example rules")
        return

    table = Table(title="Move Rules")
    table.add_column("#", style="dim", width=3)
    table.add_column("Id", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Match", width=5)
    table.add_column("Destination", style="green")
    table.add_column("Enabled", width=7)
    table.add_column("New mail", width=8)

    for position, rule in enumerate(rules, start=1):
        table.add_row(
            str(position),
            rule.id,
            rule.name,
            rule.match_mode.value,
            f"{rule.action.destination_account_id or '?'}:{rule.action.destination_path or '?'}",
            "✓" if rule.enabled else "✗",
            "✓" if rule.apply_on_new_message else "",
        )

    console.print(table)


@rules_app.command("show")
def rules_show(
    rule_id: Annotated[str, typer.Argument(help="Rule id")],
) -> None:
    """Show a rule as a Smart Filter expression."""
    from filter_move_mail.mail.addressbook import YamlAddressBook
    from filter_move_mail.rules.smart_filter import to_smart_filter
    from filter_move_mail.storage.store import RuleStore

    settings = get_settings()
    try:
        rule = RuleStore(settings.rules_path).get_rule(rule_id)
    except FilterMoveMailError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1) from e

    books = asyncio.run(YamlAddressBook(settings.address_book_path).list_books())
    expression = to_smart_filter(
        rule.conditions, rule.match_mode, {b.id: b.name for b in books}
    )

    console.print(f"[bold]{rule.name}[/bold] ({rule.id})")
    console.print(f"  {expression}")
    console.print(
        f"  -> {rule.action.destination_account_id}:{rule.action.destination_path}"
    )


@rules_app.command("parse")
def rules_parse(
    expression: Annotated[str, typer.Argument(help="Smart Filter expression")],
) -> None:
    """Parse a Smart Filter expression and show the resulting conditions."""
    from filter_move_mail.rules.smart_filter import parse_smart_filter

    result = parse_smart_filter(expression)
    if result is None:
        console.print("[red]No valid condition found[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Match {result.match_mode.value}")
    table.add_column("Field", style="cyan")
    table.add_column("Operator")
    table.add_column("Value", style="green")
    for condition in result.conditions:
        table.add_row(condition.field.value, condition.operator.value, condition.value)
    console.print(table)


# === Run Commands ===


@app.command()
def run(
    folder: Annotated[
        list[str] | None,
        typer.Option("--folder", "-f", help="Folder as ACCOUNT:PATH (repeatable)"),
    ] = None,
    rule_id: Annotated[
        str | None, typer.Option("--rule", "-r", help="Run only this rule")
    ] = None,
) -> None:
    """Run rules once: over all inboxes, chosen folders, or a single rule."""
    settings = get_settings()
    _init_logging(settings)
    service, _ = _build(settings)

    folders = [_parse_folder(f) for f in folder or []]

    async def _run():
        if rule_id:
            return await service.run_selected_rule(rule_id)
        if folders:
            return await service.run_rules_on_folders(folders)
        return await service.run_all_rules()

    try:
        result = asyncio.run(_run())
    except FilterMoveMailError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1) from e

    _print_result(result)


@app.command()
def watch() -> None:
    """Watch inboxes and apply new-mail rules until interrupted."""
    from filter_move_mail.mail.maildir import MaildirNewMailSource
    from filter_move_mail.watcher import NewMailSubscription
    from filter_move_mail.watcher import watch as watch_loop

    settings = get_settings()
    _init_logging(settings)
    service, mail_store = _build(settings)

    source = MaildirNewMailSource(mail_store)
    subscription = NewMailSubscription(source, service)

    console.print("[bold]filter-move-mail[/bold] watching for new mail...")
    console.print(f"  Poll interval: {settings.poll_interval_seconds}s")
    try:
        filter_settings = service.rule_store.load_settings()
    except FilterMoveMailError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1) from e
    if not filter_settings.apply_on_new_message:
        console.print("[yellow]apply_on_new_message is off; waiting for it to be enabled[/yellow]")

    try:
        asyncio.run(watch_loop(source, subscription, settings.poll_interval_seconds))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/dim]")


# === Config Commands ===


@config_app.command("export")
def config_export(
    output: Annotated[
        Path | None, typer.Argument(help="Output file (default: stdout)")
    ] = None,
) -> None:
    """Export rules, settings and account selection as JSON."""
    from filter_move_mail.storage.store import RuleStore, dump_envelope

    settings = get_settings()
    try:
        text = dump_envelope(RuleStore(settings.rules_path).export_config())
    except FilterMoveMailError as e:
        console.print(f"[red]Export failed:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    if output is None:
        print(text)
        return
    output.write_text(text)
    console.print(f"[green]Exported[/green] {output}")


@config_app.command("import")
def config_import(
    source: Annotated[Path, typer.Argument(help="JSON file produced by 'config export'")],
) -> None:
    """Replace rules, settings and account selection from an export file."""
    from filter_move_mail.storage.store import RuleStore, load_envelope_file

    settings = get_settings()
    try:
        envelope = RuleStore(settings.rules_path).import_config(load_envelope_file(source))
    except ConfigImportError as e:
        console.print(f"[red]Import failed:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    console.print(f"[green]Imported[/green] {len(envelope.filters)} rule(s) from {source}")


if __name__ == "__main__":
    app()
