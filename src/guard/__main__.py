import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

# Ensure the src directory is on sys.path when running as a script
_SRC_DIR = Path(__file__).resolve().parents[1]
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from guard.application.dtos import OrganizationSummaryView, PatrolSummaryView
from guard.bootstrap import create_guard_management, seed_sample_data
from guard.settings import GuardSettings

_CONSOLE = Console()
_BORDER_ORGANIZATION = "yellow"
_BORDER_PATROL = "green"
_BORDER_RESOURCES = "bright_yellow"
_BORDER_REPUTATION = "magenta"


def _print_help_surface() -> None:
    print("\nHelp:")
    print("- Commands: 'demo' seeds the City Watch sample, 'summary' lists stored organizations.")
    print("- Startup issues: verify GUARD_DATABASE_URL or unset it to use in-memory mode.")


def _patrol_panel(patrol: PatrolSummaryView) -> Panel:
    table = Table(show_header=True, header_style="bold yellow")
    table.add_column("Stat")
    table.add_column("Total", justify="right")
    table.add_column("Base", justify="right")
    table.add_column("Effects", justify="right")
    table.add_column("Org", justify="right")
    table.add_column("Sources")
    for line in patrol.stats:
        table.add_row(
            line.stat_name,
            str(line.total),
            str(line.base),
            f"{line.effects:+d}",
            f"{line.org:+d}",
            escape("\n".join(line.sources)),
        )
    if patrol.last_order:
        table.caption = escape(f"Last order ({patrol.last_order_age}): {patrol.last_order}")
    officer = patrol.officer_name or "no officer"
    return Panel(
        table,
        title=escape(f"Patrol {patrol.name}"),
        subtitle=escape(f"{officer}, {patrol.soldier_count} soldiers, {patrol.effect_count} effects"),
        subtitle_align="left",
        border_style=_BORDER_PATROL,
    )


def _print_summary(view: OrganizationSummaryView) -> None:
    title = f"{view.name} ({view.subtitle})" if view.subtitle else view.name
    stats = Table(show_header=True, header_style="bold yellow")
    stats.add_column("Stat")
    stats.add_column("Base", justify="right")
    stats.add_column("Effective", justify="right")
    for name, value in view.base_stats.items():
        stats.add_row(name, str(value), str(view.effective_stats.get(name, value)))
    active = ", ".join(view.active_modifiers) or "none"
    _CONSOLE.print(
        Panel(
            stats,
            title=escape(title),
            subtitle=escape(f"version {view.version} | active: {active}"),
            subtitle_align="left",
            border_style=_BORDER_ORGANIZATION,
        )
    )

    for patrol in view.patrols:
        _CONSOLE.print(_patrol_panel(patrol))

    if view.resources:
        resources = Table(show_header=True, header_style="bold yellow")
        resources.add_column("Resource")
        resources.add_column("Quantity", justify="right")
        resources.add_column("Status")
        for resource in view.resources:
            resources.add_row(escape(resource.name), str(resource.quantity), "low" if resource.is_low else "")
        _CONSOLE.print(Panel(resources, title="Resources", border_style=_BORDER_RESOURCES))

    if view.reputation:
        reputation = Table(show_header=True, header_style="bold yellow")
        reputation.add_column("Faction")
        reputation.add_column("Standing")
        reputation.add_column("Modifier", justify="right")
        for entry in view.reputation:
            reputation.add_row(escape(entry.name), entry.label, f"{entry.modifier:+d}")
        _CONSOLE.print(Panel(reputation, title="Reputation", border_style=_BORDER_REPUTATION))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m guard", description="Guard organization management")
    parser.add_argument("command", choices=("demo", "summary"), help="what to run")
    return parser


def main(argv=None) -> int:
    load_dotenv()
    args = _build_parser().parse_args(argv)
    try:
        settings = GuardSettings.from_env()
        logging.basicConfig(
            level=getattr(logging, settings.log_level, logging.WARNING),
            format="%(levelname)s %(name)s: %(message)s",
        )
        management = create_guard_management(settings)
        if args.command == "demo":
            seed_sample_data(management)
        views = management.summaries()
        if not views:
            print("No guard organizations stored.")
        for view in views:
            _print_summary(view)
        return 0
    except KeyboardInterrupt:
        print("\nSession ended.")
        return 130
    except Exception as exc:
        print("An unexpected error occurred.")
        print(f"Reason: {exc}")
        _print_help_surface()
        return 1


if __name__ == "__main__":
    sys.exit(main())
