"""Main CLI entry point for the crm-automation command."""

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..automation.recorder import RequestRecorder
from ..automation.webhooks import WebhookDispatcher
from ..core.config import (
    DIRECTORY_FILE,
    EDGE_STATE_FILE,
    LEDGER_FILE,
    ROUND_ROBIN_FILE,
    RULES_FILE,
    EngineConfig,
    EngineConfigManager,
)
from ..core.errors import AutomationError, ConfigurationError
from ..storage.models import Lead
from ..team.directory import Directory
from ..team.round_robin import CursorStore, RoundRobinAssigner
from ..workflows.actions import ActionExecutor
from ..workflows.conditions import ConditionEvaluator
from ..workflows.engine import IdempotencyLedger, RuleEngine, RuleStatus
from ..workflows.events import event_from_dict
from ..workflows.fields import CustomFieldDefinition, FieldResolver
from ..workflows.models import FilterCondition
from ..workflows.repository import RuleRepository
from ..workflows.summaries import describe_action, describe_trigger
from ..workflows.triggers import EdgeStateStore

console = Console()

STATUS_STYLES = {
    RuleStatus.EXECUTED: "green",
    RuleStatus.ACTION_FAILED: "red",
    RuleStatus.ERROR: "bold red",
    RuleStatus.DUPLICATE: "yellow",
    RuleStatus.CONDITIONS_NOT_MET: "dim",
    RuleStatus.NOT_FIRED: "dim",
}


def _read_json(path: str) -> Any:
    with open(path, 'r') as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"{path} is not valid JSON: {e}")


def _as_list(data: Any) -> List[Any]:
    return data if isinstance(data, list) else [data]


def get_repository(config: EngineConfig) -> RuleRepository:
    return RuleRepository(config.path_for(RULES_FILE))


def get_directory(config: EngineConfig, directory_path: Optional[str] = None) -> Directory:
    path = Path(directory_path) if directory_path else config.path_for(DIRECTORY_FILE)
    if not path.exists():
        return Directory()
    return Directory.load(path)


def get_resolver(fields_path: Optional[str]) -> FieldResolver:
    if not fields_path:
        return FieldResolver()
    return FieldResolver(CustomFieldDefinition.from_dict(f) for f in _as_list(_read_json(fields_path)))


@click.group()
@click.version_option(version="1.0.0", prog_name="crm-automation")
@click.option("--data-dir", help="Directory holding rules and engine state")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, data_dir: Optional[str], verbose: bool):
    """CRM automation - lead segmentation and rule engine.

    \b
    Quick Start:
      crm-automation rules add --file rule.json         # Store a rule
      crm-automation rules list                         # Show rules
      crm-automation segment -l leads.json -c cond.json # Filter leads
      crm-automation simulate -e events.json            # Dry-run events
    """
    config = EngineConfigManager().config
    if data_dir:
        config.data_dir = data_dir

    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    ctx.obj = config


# ============================================================================
# RULES
# ============================================================================

@cli.group()
def rules():
    """Manage automation rules."""
    pass


@rules.command("list")
@click.option("--directory", "directory_path", type=click.Path(exists=True),
              help="Teams/users/phone lists JSON for action names")
@click.pass_obj
def list_rules(config: EngineConfig, directory_path: Optional[str]):
    """List rules in evaluation order."""
    repo = get_repository(config)
    directory = get_directory(config, directory_path)
    all_rules = repo.list_rules()

    if not all_rules:
        console.print("[yellow]No automation rules defined.[/yellow]")
        return

    table = Table(title=f"Automation Rules ({len(all_rules)})")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan", max_width=30)
    table.add_column("When")
    table.add_column("Then")
    table.add_column("Enabled", justify="center")

    for rule in all_rules:
        table.add_row(
            rule.id,
            escape(rule.name),
            describe_trigger(rule.trigger, has_conditions=bool(rule.conditions)),
            describe_action(rule.action, directory),
            "[green]yes[/green]" if rule.is_enabled else "[dim]no[/dim]"
        )

    console.print(table)


@rules.command("show")
@click.argument("rule_id")
@click.pass_obj
def show_rule(config: EngineConfig, rule_id: str):
    """Show one rule as JSON."""
    rule = get_repository(config).get_rule(rule_id)
    if not rule:
        raise click.ClickException(f"Rule {rule_id} not found")
    console.print_json(json.dumps(rule.to_dict()))


@rules.command("add")
@click.option("--file", "-f", "file_path", type=click.Path(exists=True), required=True,
              help="Rule JSON (object or list of objects)")
@click.pass_obj
def add_rules(config: EngineConfig, file_path: str):
    """Add rules from a JSON file."""
    repo = get_repository(config)
    added = 0
    for item in _as_list(_read_json(file_path)):
        try:
            rule = repo.import_rule(item)
        except AutomationError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            continue
        console.print(f"[green]Added[/green] {rule.id} {escape(rule.name)}")
        added += 1

    if not added:
        raise click.ClickException("No rules added")


@rules.command("enable")
@click.argument("rule_id")
@click.pass_obj
def enable_rule(config: EngineConfig, rule_id: str):
    """Enable a rule."""
    if not get_repository(config).enable_rule(rule_id):
        raise click.ClickException(f"Rule {rule_id} not found")
    console.print(f"[green]Enabled[/green] {rule_id}")


@rules.command("disable")
@click.argument("rule_id")
@click.pass_obj
def disable_rule(config: EngineConfig, rule_id: str):
    """Disable a rule."""
    if not get_repository(config).disable_rule(rule_id):
        raise click.ClickException(f"Rule {rule_id} not found")
    console.print(f"[yellow]Disabled[/yellow] {rule_id}")


@rules.command("delete")
@click.argument("rule_id")
@click.pass_obj
def delete_rule(config: EngineConfig, rule_id: str):
    """Delete a rule and its trigger state."""
    repo = get_repository(config)
    edge_states = EdgeStateStore(config.path_for(EDGE_STATE_FILE))
    repo.on_delete(edge_states.forget_rule)
    if not repo.delete_rule(rule_id):
        raise click.ClickException(f"Rule {rule_id} not found")
    console.print(f"[red]Deleted[/red] {rule_id}")


# ============================================================================
# SEGMENTATION AND SIMULATION
# ============================================================================

@cli.command()
@click.option("--leads", "-l", "leads_path", type=click.Path(exists=True), required=True,
              help="Lead snapshots JSON list")
@click.option("--conditions", "-c", "conditions_path", type=click.Path(exists=True), required=True,
              help="Filter conditions JSON list")
@click.option("--fields", "fields_path", type=click.Path(exists=True),
              help="Custom field definitions JSON list")
def segment(leads_path: str, conditions_path: str, fields_path: Optional[str]):
    """Show leads matching a list of filter conditions."""
    try:
        leads = [Lead.from_dict(l) for l in _as_list(_read_json(leads_path))]
        conditions = [FilterCondition.from_dict(c) for c in _as_list(_read_json(conditions_path))]
    except (ConfigurationError, KeyError, ValueError) as e:
        raise click.ClickException(str(e))

    matched = ConditionEvaluator(get_resolver(fields_path)).segment(leads, conditions)

    table = Table(title=f"Segment: {len(matched)} of {len(leads)} leads")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan", max_width=25)
    table.add_column("Stage")
    table.add_column("Source")
    table.add_column("Deal Value", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Tags", max_width=30)

    for lead in matched:
        table.add_row(
            lead.id,
            escape(lead.name or ""),
            lead.stage or "",
            lead.source or "",
            "" if lead.deal_value is None else str(lead.deal_value),
            "" if lead.score is None else str(lead.score),
            escape(", ".join(lead.tags))
        )

    console.print(table)


@cli.command()
@click.option("--events", "-e", "events_path", type=click.Path(exists=True), required=True,
              help="Domain events JSON list")
@click.option("--directory", "directory_path", type=click.Path(exists=True),
              help="Teams/users/phone lists JSON")
@click.option("--fields", "fields_path", type=click.Path(exists=True),
              help="Custom field definitions JSON list")
@click.option("--send-webhooks", is_flag=True, help="Deliver SEND_WEBHOOK requests")
@click.pass_obj
def simulate(config: EngineConfig, events_path: str, directory_path: Optional[str],
             fields_path: Optional[str], send_webhooks: bool):
    """Run events through the enabled rules and show what would happen."""
    try:
        events = [event_from_dict(e) for e in _as_list(_read_json(events_path))]
    except (ConfigurationError, KeyError, ValueError) as e:
        raise click.ClickException(str(e))

    directory = get_directory(config, directory_path)
    recorder = RequestRecorder()
    executor = ActionExecutor(
        directory,
        assigner=RoundRobinAssigner(directory, CursorStore(config.path_for(ROUND_ROBIN_FILE))),
        request_handler=recorder,
        webhook_handler=WebhookDispatcher(config, async_delivery=False) if send_webhooks else None
    )
    engine = RuleEngine(
        get_repository(config),
        executor,
        evaluator=ConditionEvaluator(get_resolver(fields_path)),
        edge_states=EdgeStateStore(config.path_for(EDGE_STATE_FILE),
                                   max_entries=config.edge_state_max_entries),
        ledger=IdempotencyLedger(config.path_for(LEDGER_FILE), max_entries=config.ledger_max_entries)
    )

    table = Table(title=f"Simulation ({len(events)} events)")
    table.add_column("Event", style="dim")
    table.add_column("Lead", style="cyan")
    table.add_column("Rule")
    table.add_column("Result")
    table.add_column("Request / Reason", max_width=50)

    executed = 0
    for event in events:
        outcome = engine.on_event(event)
        for rule_outcome in outcome.rules:
            style = STATUS_STYLES.get(rule_outcome.status, "")
            detail = rule_outcome.error
            result = rule_outcome.action_result
            if rule_outcome.status == RuleStatus.EXECUTED and result and result.request:
                detail = json.dumps(result.request.to_dict(), default=str)
                executed += 1
            table.add_row(
                outcome.kind,
                outcome.lead_id,
                rule_outcome.rule_name,
                f"[{style}]{rule_outcome.status.value}[/{style}]" if style else rule_outcome.status.value,
                escape(detail[:200])
            )

    console.print(table)
    console.print(Panel.fit(
        f"Events: {len(events)}\nActions executed: {executed}\nRequests recorded: {len(recorder.requests)}",
        title="Summary"
    ))


if __name__ == "__main__":
    cli()
