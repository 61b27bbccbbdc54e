#!/usr/bin/env python3
"""
Baseline Control CLI - Command Line Interface for IAM Baseline.

Provides commands for checking, planning and applying the declarative
IAM baseline, inspecting its contents, and reviewing the run history.
"""

import json
import logging
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from ..audit import AuditLogger
from ..engine import BaselineLoader, BaselineLoadError, TerraformRenderer
from ..engine.policy_templates import TEMPLATES
from ..models import AuditRecord, RunAction, RunResult
from ..workflows import (
    ApplyWorkflow,
    PlanWorkflow,
    ValidateWorkflow,
    VerifyWorkflow,
    validate_baseline,
)

# Setup logging
logging.basicConfig(level=logging.WARNING, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()


class BaselineController:
    """Main controller for baseline operations."""

    def __init__(self, config_path: Optional[str] = None, mock_mode: bool = False,
                 baseline_dir: Optional[str] = None):
        """Initialize the baseline controller."""
        self.config_path = Path(config_path) if config_path else None
        self.mock_mode = mock_mode

        # Load configuration
        self.config = self._load_config()
        self.config["mock_mode"] = mock_mode
        if baseline_dir:
            self.config["baseline_dir"] = baseline_dir

        self.loader = BaselineLoader(self.config.get("baseline_dir"))
        self.audit_logger = AuditLogger(self.config["audit_dir"])

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file or use defaults."""
        config: Dict[str, Any] = {
            "baseline_dir": None,
            "work_dir": ".baseline",
            "audit_dir": "audit",
            "evidence_dir": "evidence",
            "terraform": {"binary": "terraform", "timeout": 600},
            "aws": {"region": "us-east-1", "profile": None},
        }

        if self.config_path:
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    file_config = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise click.ClickException(f"Error loading config {self.config_path}: {e}")

            for key, value in file_config.items():
                if isinstance(value, dict) and isinstance(config.get(key), dict):
                    config[key] = {**config[key], **value}
                else:
                    config[key] = value
            logger.info(f"Loaded configuration from {self.config_path}")

        return config

    def load_baseline(self):
        try:
            return self.loader.load()
        except BaselineLoadError as e:
            raise click.ClickException(str(e))


@click.group()
@click.option('--config', '-c', envvar='BASELINE_CONFIG', type=click.Path(dir_okay=False),
              help='Path to JSON configuration file')
@click.option('--baseline-dir', '-b', type=click.Path(file_okay=False),
              help='Directory holding the baseline files')
@click.option('--mock/--real', default=False, help='Use the simulated backend instead of Terraform')
@click.option('--verbose', '-v', is_flag=True, help='Show log output')
@click.pass_context
def cli(ctx, config, baseline_dir, mock, verbose):
    """IAM Baseline Control CLI - declarative IAM groups, users, policies and audit trail"""
    if verbose:
        logging.getLogger().setLevel(logging.INFO)

    ctx.ensure_object(dict)
    ctx.obj['controller'] = BaselineController(config, mock, baseline_dir)


@cli.command()
@click.pass_context
def validate(ctx):
    """Check the baseline locally and run terraform validate."""
    controller = ctx.obj['controller']

    result = ValidateWorkflow(controller.config).execute()
    display_run_results(result)
    ctx.exit(0 if result.success else 1)


@cli.command()
@click.pass_context
def plan(ctx):
    """Show what terraform would change (dry run)."""
    controller = ctx.obj['controller']

    result = PlanWorkflow(controller.config).execute()
    if result.plan and result.plan.output:
        console.print(result.plan.output, markup=False, highlight=False)
    display_run_results(result)
    ctx.exit(0 if result.success else 1)


@cli.command()
@click.option('--yes', '-y', is_flag=True, help='Skip the confirmation prompt')
@click.pass_context
def apply(ctx, yes):
    """Plan and apply the baseline, then confirm it converged."""
    controller = ctx.obj['controller']

    if not yes and not Confirm.ask("Apply the baseline to the AWS account?", console=console):
        console.print("[yellow]Apply cancelled[/yellow]")
        ctx.exit(1)

    result = ApplyWorkflow(controller.config).execute()
    if result.plan and result.plan.output:
        console.print(result.plan.output, markup=False, highlight=False)
    display_run_results(result)
    ctx.exit(0 if result.success else 1)


@cli.command()
@click.option('--output', '-o', type=click.Path(dir_okay=False),
              help='Write the configuration to this file instead of stdout')
@click.pass_context
def render(ctx, output):
    """Print the Terraform JSON rendered from the baseline."""
    controller = ctx.obj['controller']
    baseline = controller.load_baseline()

    errors = validate_baseline(baseline)
    if errors:
        display_errors(errors)
        ctx.exit(1)

    content = json.dumps(TerraformRenderer(baseline).render(), indent=2, sort_keys=True)
    if output:
        Path(output).write_text(content + "\n", encoding="utf-8")
        console.print(f"[green]Wrote {output}[/green]")
    else:
        click.echo(content)

    controller.audit_logger.log_event(AuditRecord(
        id=str(uuid.uuid4()),
        action=RunAction.RENDER,
        step="baseline.render",
        target=output or "stdout",
        success=True,
    ))


@cli.command()
@click.pass_context
def show(ctx):
    """Show the groups, users, policies and trail the baseline declares."""
    controller = ctx.obj['controller']
    baseline = controller.load_baseline()

    console.print(Panel.fit(
        f"[bold blue]IAM Baseline[/bold blue]\n"
        f"Region: {baseline.region}\n"
        f"Account: {baseline.account_id or 'resolved at plan time'}"
    ))

    table = Table(title=f"Policies ({len(baseline.policies)})")
    table.add_column("Name", style="cyan")
    table.add_column("Statements", style="magenta")
    table.add_column("Description", style="green")
    for policy in baseline.policies:
        table.add_row(policy.name, str(len(policy.document.statements)), policy.description)
    console.print(table)

    table = Table(title=f"Groups ({len(baseline.groups)})")
    table.add_column("Name", style="cyan")
    table.add_column("Policies", style="yellow")
    table.add_column("Members", style="green")
    for group in baseline.groups:
        table.add_row(
            group.name,
            "\n".join(group.policies) or "-",
            ", ".join(controller.loader.get_group_members(group.name)) or "-",
        )
    console.print(table)

    table = Table(title=f"Users ({len(baseline.users)})")
    table.add_column("Name", style="cyan")
    table.add_column("Groups", style="yellow")
    for user in baseline.users:
        table.add_row(user.name, ", ".join(user.groups) or "-")
    console.print(table)

    if baseline.trail:
        trail = baseline.trail
        console.print(f"\n[bold]Audit trail:[/bold] {trail.name} → s3://{trail.bucket_name}"
                      f"{'/' + trail.s3_key_prefix if trail.s3_key_prefix else ''}")
        console.print(f"Multi-region: {trail.is_multi_region_trail}  "
                      f"Log file validation: {trail.enable_log_file_validation}")
    else:
        console.print("[yellow]No audit trail configured[/yellow]")


@cli.command()
@click.pass_context
def verify(ctx):
    """Check that the declared resources exist in the AWS account."""
    controller = ctx.obj['controller']

    result = VerifyWorkflow(controller.config).execute()
    display_run_results(result)
    ctx.exit(0 if result.success else 1)


@cli.command()
@click.option('--action', type=click.Choice([a.value for a in RunAction]), help='Filter by action')
@click.option('--days', default=30, help='Number of days to look back')
@click.option('--limit', default=50, help='Maximum number of records to show')
@click.pass_context
def history(ctx, action, days, limit):
    """Show the audit log of recent runs."""
    controller = ctx.obj['controller']

    start_date = datetime.now(timezone.utc) - timedelta(days=days)
    records = controller.audit_logger.get_events(
        action=RunAction(action) if action else None, start_date=start_date, limit=limit
    )

    if not records:
        console.print("[yellow]No audit records found[/yellow]")
        return

    table = Table(title=f"Run History ({len(records)})")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Action", style="green")
    table.add_column("Step", style="yellow")
    table.add_column("Run", style="blue")
    table.add_column("Success", style="red")

    for record in records:
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            record.action.value,
            record.step,
            (record.run_id or "")[:8],
            "✓" if record.success else "✗",
        )

    console.print(table)


@cli.command()
def templates():
    """List the policy templates usable from policies.yaml."""
    table = Table(title="Policy Templates")
    table.add_column("Template", style="cyan")
    table.add_column("Description", style="green")

    for name, builder in sorted(TEMPLATES.items()):
        summary = (builder.__doc__ or "").strip().splitlines()[0] if builder.__doc__ else ""
        table.add_row(name, summary)

    console.print(table)


def display_errors(errors):
    console.print("[red]Errors:[/red]")
    for error in errors:
        console.print(f"  - {error}", markup=False, highlight=False)


def display_run_results(result: RunResult):
    """Display workflow run results."""
    if result.success:
        console.print(f"[green]✓ {result.action.value.capitalize()} completed successfully[/green]")
    else:
        console.print(f"[red]✗ {result.action.value.capitalize()} failed with {len(result.errors)} errors[/red]")

    table = Table(title="Run Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row("Run ID", result.run_id)
    table.add_row("Started", result.started_at.strftime("%Y-%m-%d %H:%M:%S") if result.started_at else "N/A")
    table.add_row("Completed", result.completed_at.strftime("%Y-%m-%d %H:%M:%S") if result.completed_at else "N/A")
    table.add_row("Total Steps", str(result.total_steps))
    table.add_row("Failed Steps", str(sum(1 for s in result.steps if not s.get('success', False))))
    if result.plan is not None:
        table.add_row("Plan", str(result.plan))
    if result.converged is not None:
        table.add_row("Converged", "yes" if result.converged else "no")

    console.print(table)

    if result.errors:
        display_errors(result.errors)


def main():
    cli(obj={})


if __name__ == "__main__":
    sys.exit(main())
