"""Command line entry point.

Example:
    pubg-analyzer analyze 8d5c4f0e-1a2b-4c3d-8e4f-0a1b2c3d4e5f -p PlayerOne -p PlayerTwo
    pubg-analyzer player PlayerOne
    pubg-analyzer compare PlayerOne PlayerTwo
"""

import json
import logging
import os
from typing import Optional, Tuple

import click
from dotenv import load_dotenv

from ..core.api_key_manager import APIKeyManager
from ..core.pubg_client import PUBGAPIError, PUBGClient
from ..metrics import start_metrics_server
from ..models import export_match_analysis, export_player_stats
from .match_analysis import AnalysisError, MatchAnalysisService
from .player_stats import PlayerStatsService

logger = logging.getLogger(__name__)

REQUIRED_VARS = ["PUBG_API_KEYS"]


def build_client_from_env() -> PUBGClient:
    """Create a PUBG client from environment variables.

    Reads PUBG_API_KEYS (required, comma separated), PUBG_API_RPM (default 10),
    PUBG_PLATFORM (default steam) and PUBG_TIMEOUT (default 30).

    Raises:
        ValueError: If a required variable is missing or a number is invalid
    """
    missing_vars = [var for var in REQUIRED_VARS if not os.getenv(var)]
    if missing_vars:
        raise ValueError(f"Missing required environment variables: {', '.join(missing_vars)}")

    key_manager = APIKeyManager.from_key_string(
        os.getenv("PUBG_API_KEYS"), rpm=int(os.getenv("PUBG_API_RPM", "10"))
    )
    return PUBGClient(
        key_manager,
        platform=os.getenv("PUBG_PLATFORM", "steam"),
        timeout=int(os.getenv("PUBG_TIMEOUT", "30")),
    )


def _write(output: Optional[str], payload: str) -> None:
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(payload + "\n")
        click.echo(f"Wrote {output}")
    else:
        click.echo(payload)


@click.group()
@click.option("--env-file", default=".env", help="Path to .env file (default: .env)")
@click.option("--log-level", default=None, help="Log level (default: $LOG_LEVEL or INFO)")
@click.option("--metrics-port", default=None, type=int, help="Expose Prometheus metrics on this port")
@click.pass_context
def cli(ctx: click.Context, env_file: str, log_level: Optional[str], metrics_port: Optional[int]):
    """Analyze PUBG match telemetry."""
    # Load environment variables
    load_dotenv(env_file)

    # Setup logging
    level = (log_level or os.getenv("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if metrics_port:
        start_metrics_server(port=metrics_port, worker_name="pubg-analyzer")

    try:
        ctx.obj = build_client_from_env()
    except ValueError as e:
        raise click.UsageError(str(e))


@cli.command()
@click.argument("match_id")
@click.option("-p", "--player", "players", multiple=True, required=True, help="Player to analyze (repeatable)")
@click.option("-o", "--output", default=None, help="Write the JSON report to this file")
@click.pass_obj
def analyze(client: PUBGClient, match_id: str, players: Tuple[str, ...], output: Optional[str]):
    """Analyze MATCH_ID for one or more players."""
    service = MatchAnalysisService(client)
    try:
        analysis = service.analyze_match(match_id, list(players))
    except AnalysisError as e:
        raise click.ClickException(str(e))

    _write(output, export_match_analysis(analysis))


@cli.command()
@click.argument("name")
@click.option("--matches", default=10, type=int, help="Recent matches to read (default: 10)")
@click.option("-o", "--output", default=None, help="Write the JSON report to this file")
@click.pass_obj
def player(client: PUBGClient, name: str, matches: int, output: Optional[str]):
    """Show recent-match stats for NAME."""
    service = PlayerStatsService(client)
    try:
        stats = service.get_player_stats(name, max_matches=matches)
    except (AnalysisError, PUBGAPIError) as e:
        raise click.ClickException(str(e))

    _write(output, export_player_stats(stats))


@cli.command()
@click.argument("names", nargs=-1, required=True)
@click.option("-o", "--output", default=None, help="Write the JSON report to this file")
@click.pass_obj
def compare(client: PUBGClient, names: Tuple[str, ...], output: Optional[str]):
    """Compare recent-match stats for two or more players."""
    service = PlayerStatsService(client)
    try:
        results = service.compare_players(list(names))
    except (AnalysisError, PUBGAPIError) as e:
        raise click.ClickException(str(e))

    _write(output, json.dumps([stats.to_dict() for stats in results], indent=2))


if __name__ == "__main__":
    cli()
