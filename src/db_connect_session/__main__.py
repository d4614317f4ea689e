"""Run one statement against a configured connection and print the result.

Usage:
    python -m db_connect_session "SELECT * FROM users WHERE id = ?" 42 --single
"""

import argparse
import logging
import sys
from typing import Any, Optional, Sequence

from pydantic import BaseModel

from db_connect_session.core import DatabaseContext
from db_connect_session.exceptions import DatabaseError
from db_connect_session.models.config import ContextConfig
from db_connect_session.utils import (
    convert_row_to_json_safe,
    convert_rows_to_json_safe,
    dumps,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="db-connect-session",
        description="Execute a statement through a named connection.",
    )
    parser.add_argument("statement", help="SQL statement to execute")
    parser.add_argument("params", nargs="*", help="Positional values to bind")
    parser.add_argument("--name", help="Connection name (default from config)")
    parser.add_argument("--kind", help="Backend kind (sql, mysql, postgresql, sqlite)")
    parser.add_argument(
        "--credentials", help="Credentials JSON file (overrides DB_CREDENTIALS_PATH)"
    )
    parser.add_argument(
        "--single", action="store_true", help="Return only the first row of a SELECT"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def result_payload(result: BaseModel) -> dict[str, Any]:
    """Dump a result model with its row values made JSON-safe."""
    payload = result.model_dump()
    if payload.get("rows") is not None:
        payload["rows"] = convert_rows_to_json_safe(payload["rows"])
    if payload.get("row") is not None:
        payload["row"] = convert_row_to_json_safe(payload["row"])
    return payload


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Command line entry point.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    config = ContextConfig.from_env()
    if args.credentials:
        config = config.model_copy(update={"credentials_path": args.credentials})

    with DatabaseContext.from_config(config) as context:
        try:
            session = context.session(args.name, backend_kind=args.kind)
            execution = session.query(args.statement, args.params, args.single)
        except DatabaseError as e:
            logger.debug("Statement failed", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1

        print(dumps(result_payload(execution.get_result()), indent=True))
    return 0


def cli_entry() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    cli_entry()
