"""CREL CLI - schema bootstrap and offline scoring.

Usage:
    crel init-db [--database-url URL]
    crel score [--input PATH]

``score`` reads a JSON document:

    {"items": [{"category": "qualitative", "item_key": "...", "value": 80}],
     "net_worth": 1500000, "annual_sales": 900000,
     "weights": {...}, "tier_thresholds": [...]}

``weights`` and ``tier_thresholds`` default to the tenant defaults. Output is
deterministic JSON (sorted keys).

Exit codes:
    0: Success
    1: Internal error (unexpected)
    2: Invalid input
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any

import pydantic

from crel.errors import CrelError
from crel.persistence.db import (
    create_app_engine,
    get_database_url,
    init_schema,
    is_database_configured,
)
from crel.scoring.catalog import check_items_against_catalog
from crel.scoring.engine import compute_composite
from crel.scoring.models import (
    DEFAULT_TIER_THRESHOLDS,
    DEFAULT_WEIGHTS,
    CategoryWeights,
    ScoringItem,
    TierThreshold,
)
from crel.scoring.tiers import classify, guarantee_capital, suggested_credit_line
from crel.scoring.weights import check_tier_thresholds, check_weight_sum

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV = "CREL_LOG_LEVEL"


class ScoreRequest(pydantic.BaseModel):
    """Input document of ``crel score``."""

    items: list[ScoringItem] = pydantic.Field(..., min_length=1)
    net_worth: float = pydantic.Field(..., ge=0.0)
    annual_sales: float | None = pydantic.Field(default=None, ge=0.0)
    weights: CategoryWeights = DEFAULT_WEIGHTS
    tier_thresholds: list[TierThreshold] = pydantic.Field(
        default_factory=lambda: list(DEFAULT_TIER_THRESHOLDS)
    )


def _output_json(data: dict[str, Any]) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _make_error(code: str, message: str) -> dict[str, Any]:
    return {"error": {"code": code, "message": message}}


def _load_json_input(input_path: str | None) -> tuple[Any, str | None]:
    """Load JSON from file or stdin.

    Returns:
        Tuple of (parsed_data, error_message). If error_message is not None,
        parsed_data should be ignored.
    """
    try:
        if input_path:
            with open(input_path, encoding="utf-8") as f:
                content = f.read()
        else:
            content = sys.stdin.read()

        if not content.strip():
            return None, "Empty input"

        return json.loads(content), None
    except FileNotFoundError:
        return None, f"File not found: {input_path}"
    except json.JSONDecodeError as e:
        return None, f"Invalid JSON: {e}"
    except OSError as e:
        return None, f"Cannot read input: {e}"


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create the CREL tables in the configured database.

    Exit codes:
        0: schema created (or already present)
        2: no database URL given or configured
    """
    url = args.database_url or (get_database_url() if is_database_configured() else None)
    if not url:
        _output_json(
            _make_error("DATABASE_NOT_CONFIGURED", "Pass --database-url or set CREL_DATABASE_URL")
        )
        return 2

    engine = create_app_engine(url)
    try:
        init_schema(engine)
    finally:
        engine.dispose()
    _output_json({"status": "ok"})
    return 0


def cmd_score(args: argparse.Namespace) -> int:
    """Compute the composite score and suggested tier of an input document.

    Exit codes:
        0: scored
        2: invalid input (unreadable JSON, schema or business-rule violation)
    """
    data, error_msg = _load_json_input(args.input)
    if error_msg is not None:
        _output_json(_make_error("INVALID_JSON", error_msg))
        return 2

    try:
        request = ScoreRequest.model_validate(data)
        check_weight_sum(request.weights)
        check_tier_thresholds(request.tier_thresholds)
        check_items_against_catalog(request.items)
    except pydantic.ValidationError as e:
        _output_json(_make_error("INVALID_INPUT", str(e)))
        return 2
    except CrelError as e:
        _output_json(_make_error(e.code, e.message))
        return 2

    breakdown = compute_composite(request.items, request.weights)
    tier = classify(breakdown.composite_score, request.net_worth, request.tier_thresholds)

    result: dict[str, Any] = breakdown.model_dump(mode="json")
    result["tier_suggested"] = tier.value
    result["guarantee_capital"] = guarantee_capital(request.net_worth)
    if request.annual_sales is not None:
        result["credit_line_suggested"] = suggested_credit_line(
            tier, request.net_worth, request.annual_sales
        )
    logger.debug("Scored %d items: %s", len(request.items), breakdown.composite_score)
    _output_json(result)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="crel",
        description="CREL - Credit Risk Evaluation & Historical Audit Ledger CLI",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help=f"Logging level (default: ${LOG_LEVEL_ENV} or INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    init_parser = subparsers.add_parser("init-db", help="Create the database schema")
    init_parser.add_argument(
        "--database-url",
        default=None,
        metavar="URL",
        help="SQLAlchemy URL (defaults to CREL_DATABASE_URL)",
    )

    score_parser = subparsers.add_parser(
        "score",
        help="Compute composite score and suggested tier from a JSON document",
    )
    score_parser.add_argument(
        "--input",
        required=False,
        default=None,
        metavar="PATH",
        help="Path to JSON file (reads from stdin if omitted)",
    )

    return parser


def _configure_logging(level_name: str | None) -> None:
    level = (level_name or os.environ.get(LOG_LEVEL_ENV) or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Internal error (unexpected)
        2: Invalid input
    """
    try:
        parser = create_parser()
        args = parser.parse_args(argv)
        _configure_logging(args.log_level)

        if args.command is None:
            parser.print_help()
            return 0

        if args.command == "init-db":
            return cmd_init_db(args)

        if args.command == "score":
            return cmd_score(args)

        return 0

    except Exception as e:
        logger.exception("Unexpected CLI failure")
        _output_json(_make_error("INTERNAL_ERROR", str(e)))
        return 1


if __name__ == "__main__":
    sys.exit(main())
