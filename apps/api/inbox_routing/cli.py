"""CLI tools for inbox routing administration."""

import click

from inbox_routing.core.config import settings
from inbox_routing.core.errors import ConfigurationError
from inbox_routing.core.team_registry import load_registry
from inbox_routing.db.enums import AlertStatus
from inbox_routing.db.session import SessionLocal
from inbox_routing.services import (
    alert_service,
    assignment_service,
    deal_service,
    presence_service,
    team_service,
)


def _registry(path: str | None = None):
    return load_registry(path or settings.ROUTING_CONFIG_PATH or None)


@click.group()
def cli():
    """Inbox routing CLI tools."""
    pass


@cli.command()
@click.option("--path", default=None, help="Team table JSON (defaults to ROUTING_CONFIG_PATH or built-in)")
def check_config(path: str | None):
    """
    Validate the team/funnel/keyword table.

    Exits non-zero on duplicate categories, empty funnels or bad stages.

    Example:
        python -m inbox_routing.cli check-config --path teams.json
    """
    try:
        registry = _registry(path)
    except ConfigurationError as e:
        click.echo(f"❌ Invalid configuration: {e}")
        raise SystemExit(1)

    click.echo(f"✓ {len(registry)} team categories")
    for team in registry.teams:
        stages = " → ".join(stage.id for stage in team.funnel.ordered_stages())
        click.echo(f"  {team.category}: {len(team.keywords)} keywords, {stages}")


@cli.command()
def sync_teams():
    """Create or refresh team rows from the team table."""
    db = SessionLocal()
    try:
        counts = team_service.sync_teams(db, _registry())
        click.echo(
            f"✓ Teams synced: {counts['created']} created, "
            f"{counts['updated']} updated, {counts['deactivated']} deactivated"
        )
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="Agent email address")
@click.option("--name", required=True, help="Agent display name")
@click.option("--team", "teams", multiple=True, help="Team category to join (repeatable)")
def add_agent(email: str, name: str, teams: tuple[str, ...]):
    """
    Create an agent (or reuse an existing one) and add team memberships.

    Example:
        python -m inbox_routing.cli add-agent --email ana@example.com --name "Ana" --team comercial
    """
    db = SessionLocal()
    try:
        agent = team_service.get_agent_by_email(db, email)
        if agent:
            click.echo(f"→ Agent {agent.email} already exists")
        else:
            agent = team_service.create_agent(db, email, name)
            click.echo(f"✓ Created agent: {agent.display_name}")
            click.echo(f"  ID: {agent.id}")

        for category in teams:
            team = team_service.get_team_by_category(db, category)
            try:
                team_service.add_team_member(db, team.id, agent.id)
                click.echo(f"✓ Added to team: {team.category}")
            except team_service.TeamMemberExistsError:
                click.echo(f"→ Already in team: {team.category}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="Agent email address")
@click.option("--online/--offline", default=True, help="Presence to record")
def set_presence(email: str, online: bool):
    """Record an agent's online flag."""
    db = SessionLocal()
    try:
        agent = team_service.get_agent_by_email(db, email)
        if not agent:
            click.echo(f"❌ Agent not found: {email}")
            return
        presence_service.set_presence(db, agent.id, online)
        click.echo(f"✓ {agent.email} is now {'online' if online else 'offline'}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--dry-run", is_flag=True, help="Preview changes without applying")
def repair_deals(dry_run: bool):
    """Move deals whose stage is not in their category's funnel to its initial stage."""
    db = SessionLocal()
    try:
        report = deal_service.repair_misplaced_deals(db, _registry(), dry_run=dry_run)
        prefix = "[DRY RUN] " if dry_run else ""
        click.echo(f"✓ {prefix}Scanned {report.scanned} deals, moved {report.moved}")
        for category, count in sorted(report.moved_by_category.items()):
            click.echo(f"  {category}: {count}")
        if report.skipped_unknown_category:
            click.echo(f"→ Skipped {report.skipped_unknown_category} deals with unknown categories")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--team", "category", required=True, help="Team category")
def equity_stats(category: str):
    """Show how evenly assignments are spread across a team."""
    db = SessionLocal()
    try:
        team = team_service.get_team_by_category(db, category)
        stats = assignment_service.get_equity_stats(db, team)
        click.echo(
            f"✓ {stats['team_category']}: {stats['online_agents']}/{stats['total_agents']} online, "
            f"std dev {stats['standard_deviation']} ({stats['equity_level']})"
        )
        for agent in stats["agents"]:
            click.echo(
                f"  {agent['display_name']}: {agent['lifetime_assignments']} assigned, "
                f"{agent['active_conversations']} active, score {agent['fairness_score']}, "
                f"ratio {agent['equity_ratio']}"
            )
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--all", "show_all", is_flag=True, help="Include resolved alerts")
def alerts(show_all: bool):
    """List routing alerts, open ones by default."""
    db = SessionLocal()
    try:
        status = None if show_all else AlertStatus.OPEN
        rows = alert_service.list_alerts(db, status=status, limit=200)
        if not rows:
            click.echo("✓ No alerts")
            return
        for alert in rows:
            click.echo(
                f"  [{alert.severity}] {alert.title} ×{alert.occurrence_count} ({alert.status}) {alert.id}"
            )
    finally:
        db.close()


if __name__ == "__main__":
    cli()
