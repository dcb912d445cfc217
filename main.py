#!/usr/bin/env python3
"""Equipment Alert Engine - CLI Entry Point."""
import sys
import json
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
import yaml
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config
    from alerts.evaluator import RuleEvaluator
    from alerts.alert_builder import AlertBuilder
    from alerts.deduplicator import AlertDeduplicator
    from alerts.engine import AlertPipeline
    from alerts.channels import build_channels

    config = load_config(config_path)
    setup_logging("DEBUG" if verbose else config["logging"].get("level", "INFO"),
                  config["logging"].get("file"))

    evaluator = RuleEvaluator(config)
    deduplicator = AlertDeduplicator(config)
    pipeline = AlertPipeline(evaluator, AlertBuilder(config), deduplicator, build_channels(config))

    return {
        "config": config, "evaluator": evaluator, "deduplicator": deduplicator, "pipeline": pipeline,
    }


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="equipalert")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Equipment Alert Engine - rule evaluation and alert deduplication."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


def _read_records(path, key):
    """List of dicts from a JSON/YAML file holding a list or ``{key: [...]}``."""
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        data = json.load(f) if path.suffix.lower() == ".json" else yaml.safe_load(f)
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise click.ClickException(f"{path}: expected a list of {key}")
    return data


def _load_alerts(path):
    from models.alerts import Alert
    return [Alert.from_dict(raw) for raw in _read_records(path, "alerts")]


def _write_alerts(path, alerts):
    with open(path, "w", encoding="utf-8") as f:
        json.dump({"alerts": [a.to_dict() for a in alerts]}, f, indent=2, ensure_ascii=False, default=str)


def _alerts_table(alerts, title):
    table = Table(title=title, show_header=True)
    table.add_column("Severity")
    table.add_column("Equipment")
    table.add_column("Rule")
    table.add_column("Message")
    table.add_column("Merged", justify="right")
    for a in alerts:
        table.add_row(a.severity, a.equipamento, a.rule_name or str(a.rule_id), (a.message or "")[:60],
                      str(a.merged_count or ""))
    return table


# ──────────────────────────────────────────────────────
# RULES
# ──────────────────────────────────────────────────────
@cli.command()
@click.argument("rules_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def validate(ctx, rules_file):
    """Validate a rules file and report invalid rules."""
    from alerts.rules_manager import RulesManager
    c = _get_components(ctx)
    manager = RulesManager(rules_file, c["config"])
    report = manager.validation_report()

    table = Table(title="Rule Validation", show_header=True)
    table.add_column("Rule", style="dim")
    table.add_column("Status")
    table.add_column("Details")
    for rule in manager.get_all_rules():
        warnings = report["warnings"].get(rule.id, [])
        table.add_row(str(rule.id), "[green]valid[/green]", "; ".join(warnings))
    for rule_id, errors in report["rejected"].items():
        table.add_row(str(rule_id), "[red]invalid[/red]", "; ".join(errors))
    console.print(table)

    for message in report["set_errors"]:
        console.print(f"[red]✗[/red] {message}")
    for message in report["set_warnings"]:
        console.print(f"[yellow]![/yellow] {message}")

    if report["rejected"] or report["set_errors"]:
        ctx.exit(1)
    console.print(f"[green]✓[/green] {report['valid']} rules valid")


@cli.command()
@click.argument("rules_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("events_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--existing", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Previously emitted alerts to deduplicate against")
@click.option("--output", type=click.Path(dir_okay=False), default=None, help="Write unique alerts as JSON")
@click.option("--dispatch", is_flag=True, help="Send unique alerts to the configured channels")
@click.pass_context
def evaluate(ctx, rules_file, events_file, existing, output, dispatch):
    """Evaluate rules over events and print the unique alerts."""
    from alerts.rules_manager import RulesManager
    c = _get_components(ctx)
    manager = RulesManager(rules_file, c["config"])
    events = _read_records(events_file, "events")
    existing_alerts = _load_alerts(existing) if existing else []

    alerts = c["pipeline"].process(manager.get_enabled_rules(), events, existing_alerts, dispatch=dispatch)
    console.print(_alerts_table(alerts, f"Alerts ({len(alerts)} from {len(events)} events)"))
    if dispatch:
        console.print(f"[green]✓[/green] Dispatched {len(alerts)} alerts to "
                      f"{len(c['pipeline'].channels)} channels")

    if output:
        _write_alerts(output, alerts)
        console.print(f"[green]✓[/green] Wrote {len(alerts)} alerts to {output}")


@cli.command()
@click.argument("alerts_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--strategy", type=click.Choice(["hash", "id", "content", "time", "smart"]), default=None,
              help="Override the configured strategy")
@click.option("--merge", is_flag=True, help="Merge near-duplicate alerts")
@click.option("--output", type=click.Path(dir_okay=False), default=None, help="Write unique alerts as JSON")
@click.pass_context
def dedup(ctx, alerts_file, strategy, merge, output):
    """Deduplicate a file of alerts."""
    c = _get_components(ctx)
    deduplicator = c["deduplicator"]
    changes = {}
    if strategy:
        changes["strategy"] = strategy
    if merge:
        changes["enable_smart_merging"] = True
    if changes:
        deduplicator.update_config(**changes)

    alerts = _load_alerts(alerts_file)
    unique = deduplicator.merge_alerts(deduplicator.deduplicate(alerts))
    console.print(_alerts_table(unique, f"Unique alerts ({len(unique)} of {len(alerts)})"))
    _print_stats(deduplicator.get_stats(), "Deduplication Stats")

    if output:
        _write_alerts(output, unique)
        console.print(f"[green]✓[/green] Wrote {len(unique)} alerts to {output}")


def _print_stats(stats, title):
    table = Table(title=title, show_header=True)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key, value in stats.items():
        table.add_row(key, f"{value:.1f}" if isinstance(value, float) else str(value))
    console.print(table)


# ──────────────────────────────────────────────────────
# STATS
# ──────────────────────────────────────────────────────
@cli.command()
@click.argument("rules_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("events_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def stats(ctx, rules_file, events_file):
    """Run rules over events and show evaluator and deduplication statistics."""
    from alerts.rules_manager import RulesManager
    c = _get_components(ctx)
    manager = RulesManager(rules_file, c["config"])
    events = _read_records(events_file, "events")
    pipeline = c["pipeline"]
    rules = manager.get_enabled_rules()

    alerts = pipeline.process(rules, events, dispatch=False)
    _print_stats(c["evaluator"].get_metrics(), "Evaluator Metrics")
    _print_stats(c["deduplicator"].get_stats(), "Deduplication Stats")

    table = Table(title="Rule Activity", show_header=True)
    table.add_column("Rule", style="dim")
    table.add_column("Evaluations", justify="right")
    table.add_column("Triggers", justify="right")
    for rule in rules:
        state = c["evaluator"].get_state(rule.id)
        table.add_row(str(rule.id), str(state["evaluation_count"]), str(state["trigger_count"]))
    console.print(table)
    console.print(f"{len(events)} events, {len(alerts)} alerts emitted, {len(pipeline.errors)} events skipped")


@cli.command("config")
@click.pass_context
def show_config(ctx):
    """Show the effective engine configuration."""
    c = _get_components(ctx)
    config = c["config"]
    table = Table(title="Engine Configuration", show_header=True)
    table.add_column("Section", style="dim")
    table.add_column("Setting")
    table.add_column("Value")
    for section in ("evaluator", "validation", "deduplication", "channels"):
        for key, value in config.get(section, {}).items():
            table.add_row(section, key, str(value))
    console.print(table)


if __name__ == "__main__":
    cli()
