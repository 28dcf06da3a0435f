from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .config import DEFAULT_LAST_X_MATCHES, DEFAULT_TIME_WINDOW, TIME_WINDOWS, settings_from_env
from .generator import GenerateReportRequest, ScoutingReportGenerator


def _write_json(path: str, obj: Any) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2)


def _parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Automated scouting report generator")
    parser.add_argument("--title", required=True, choices=["val", "lol"], help="Game title (val or lol)")
    parser.add_argument("--team", required=True, help="Opponent team name to scout")
    parser.add_argument(
        "--last", type=int, default=DEFAULT_LAST_X_MATCHES, help="Number of recent series to analyse (1-20)"
    )
    parser.add_argument(
        "--time-window", default=DEFAULT_TIME_WINDOW, choices=sorted(TIME_WINDOWS), help="Statistics window"
    )
    parser.add_argument("--tournament-filter", default=None, help="Optional tournament name filter")
    parser.add_argument("--own-team", default=None, help="Our team name, for a head-to-head comparison")
    parser.add_argument("--output", default=None, help="Path to output report JSON/markdown")
    parser.add_argument(
        "--output-format", choices=["json", "markdown"], default="json", help="Output format"
    )
    parser.add_argument("--save-evidence", default=None, help="Path to save the evidence bundle JSON")
    parser.add_argument("--debug", action="store_true", help="Print debug logs")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> Dict[str, Any]:
    settings = settings_from_env()
    if not settings.grid_api_key:
        raise SystemExit("GRID_API_KEY not found. Set it in your shell or .env file before running.")

    generator = ScoutingReportGenerator.from_settings(settings)
    request = GenerateReportRequest(
        title=args.title,
        opponent_team_name=args.team,
        last_x_matches=args.last,
        time_window=args.time_window,
        tournament_filter=args.tournament_filter,
        own_team_name=args.own_team,
    )
    try:
        return await generator.generate(request)
    finally:
        await generator.aclose()


def main(argv: Optional[list] = None) -> None:
    load_dotenv()
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    result = asyncio.run(_run(args))

    if args.save_evidence:
        _write_json(args.save_evidence, result["evidence"])

    if args.output_format == "json":
        output_text = json.dumps(result, indent=2)
    else:
        output_text = result["markdown"]

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output_text)
    else:
        print(output_text)


if __name__ == "__main__":
    main()
