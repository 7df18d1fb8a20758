"""
Command line entry point: validate a roster CSV, then provision its teams.
"""

import argparse
import csv
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from .config import Config, load_config
from .graph_client import GraphClient
from .models import RunSummary, TeamPlan, TeamStatus, UserOutcome
from .provisioner import TeamProvisioner
from .roster import RosterReader, RosterValidationError, group_by_team


EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_ROSTER_ERROR = 2
EXIT_CONFIG_ERROR = 3

logger = logging.getLogger(__name__)


def delimiter(value: str) -> str:
    """argparse type for a single-character CSV delimiter."""
    if len(value) != 1:
        raise argparse.ArgumentTypeError("delimiter must be exactly one character")
    return value


def build_parser() -> argparse.ArgumentParser:
    """Command line options for ``teams-roster``."""
    parser = argparse.ArgumentParser(
        prog="teams-roster",
        description="Create Microsoft Teams and add owners and members from a CSV roster.",
    )
    parser.add_argument(
        "roster",
        help="CSV file with TeamName, UserPrincipalName and Role columns",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and look everything up, but do not change any team",
    )
    parser.add_argument("--env-file", help="Read settings from this file instead of .env")
    parser.add_argument(
        "--delimiter", type=delimiter, default=",", help="CSV delimiter (default: ',')"
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    return parser


def configure_logging(level: str) -> None:
    """Configure root logging and quieten the HTTP and identity libraries."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # Silence verbose HTTP and token logging
    logging.getLogger("azure.identity").setLevel(logging.WARNING)
    logging.getLogger("azure.core.pipeline.policies.http_logging_policy").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def format_summary(summary: RunSummary) -> str:
    """Render a per-team report followed by totals."""
    lines = []
    prefix = "[dry run] " if summary.dry_run else ""

    for team in summary.teams:
        header = f"{prefix}{team.team_name}: {team.status.value}"
        if team.team_id:
            header += f" ({team.team_id})"
        lines.append(header)
        if team.error_details:
            lines.append(f"  error: {team.error_details}")
        for user in team.users:
            line = f"  {user.user_principal_name} [{user.role.value}] {user.outcome.value}"
            if user.message:
                line += f": {user.message}"
            lines.append(line)

    lines.append("")
    lines.append(
        f"Teams: {summary.teams_with_status(TeamStatus.CREATED)} created, "
        f"{summary.teams_with_status(TeamStatus.EXISTING)} existing, "
        f"{summary.teams_with_status(TeamStatus.PLANNED)} planned, "
        f"{summary.teams_with_status(TeamStatus.FAILED)} failed"
    )
    lines.append(
        f"Users: {summary.total_added} added, {summary.total_promoted} promoted, "
        f"{summary.users_with_outcome(UserOutcome.ALREADY_PRESENT)} already present, "
        f"{summary.users_with_outcome(UserOutcome.WOULD_ADD, UserOutcome.WOULD_PROMOTE)} pending, "
        f"{summary.total_skipped} skipped, {summary.total_failed} failed"
    )
    return "\n".join(lines)


def _provision(
    client: GraphClient, config: Config, plans: List[TeamPlan], dry_run: bool
) -> RunSummary:
    return TeamProvisioner(client, config, dry_run=dry_run).run(plans)


def main(argv: Optional[List[str]] = None, client: Optional[GraphClient] = None) -> int:
    """Run the tool and return its exit code."""
    args = build_parser().parse_args(argv)

    try:
        config: Config = load_config(args.env_file)
    except ValidationError as e:
        configure_logging(args.log_level or "INFO")
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG_ERROR

    configure_logging(args.log_level or config.monitoring.log_level)

    try:
        entries = RosterReader(delimiter=args.delimiter).read(args.roster)
    except OSError as e:
        logger.error(f"Cannot read roster {args.roster}: {e}")
        return EXIT_ROSTER_ERROR
    except (UnicodeDecodeError, csv.Error) as e:
        logger.error(f"Roster {args.roster} is not a UTF-8 CSV file: {e}")
        return EXIT_ROSTER_ERROR
    except RosterValidationError as e:
        logger.error(f"{e}; nothing was changed")
        for error in e.errors:
            logger.error(str(error))
        return EXIT_ROSTER_ERROR

    plans = group_by_team(entries)
    logger.info(f"Roster lists {len(plans)} team(s)")

    if client is None:
        with GraphClient(config) as graph:
            summary = _provision(graph, config, plans, args.dry_run)
    else:
        summary = _provision(client, config, plans, args.dry_run)

    print(format_summary(summary))
    return EXIT_FAILURES if summary.has_failures else EXIT_OK


def run() -> None:
    """Console script entry point."""
    sys.exit(main())
