"""
=============================================================================
COMMAND-LINE CLIENT
=============================================================================

Issue a single OpenML REST call from the shell and print the JSON reply.

    python -m openmlhttp get /data/61
    python -m openmlhttp --test --key $KEY post /data/tag -p data_id=61 -p tag=demo
    python -m openmlhttp --key $KEY post /run -p task_id=59 \\
        -f description=description.xml -f predictions=predictions.arff:text/plain

Exit status:
    0   2xx reply, JSON printed to stdout
    1   logical failure (non-2xx status printed to stderr)
    2   connection, protocol, parse or parameter error

=============================================================================
"""

from pathlib import Path
from typing import List, Optional, Tuple
import argparse
import json
import sys

from . import __version__
from .config import ConnectionConfig, configure_logging
from .core import Connection
from .exceptions import OpenMLHTTPError
from .http.mime_types import get_mime_type
from .http.params import ParamValue


def _parse_param(text: str) -> Tuple[str, str]:
    name, sep, value = text.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {text!r}")
    return name, value


def _parse_file(text: str) -> Tuple[str, str, Optional[str]]:
    """FIELD=PATH or FIELD=PATH:MIME"""
    field, sep, rest = text.partition("=")
    if not sep or not field or not rest:
        raise argparse.ArgumentTypeError(f"expected FIELD=PATH[:MIME], got {text!r}")
    path, _, mime = rest.partition(":")
    return field, path, mime or None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="openmlhttp",
        description="Send one request to the OpenML JSON REST API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m openmlhttp get /data/list/limit/5
  python -m openmlhttp --test get /task/59
  python -m openmlhttp --key KEY post /data/tag -p data_id=61 -p tag=demo
  python -m openmlhttp --key KEY delete /data/tag -p data_id=61 -p tag=demo
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # TARGET
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", help="Server host (default: $OPENML_HOST or www.openml.org)")
    parser.add_argument("--port", type=int, help="Server port (default: 443)")
    parser.add_argument("--prefix", help="REST prefix (default: /api/v1/json)")
    parser.add_argument("--key", "-k", help="API key (default: $OPENML_API_KEY)")
    parser.add_argument(
        "--test",
        action="store_true",
        help="Talk to the OpenML test server",
    )

    # ─────────────────────────────────────────────────────────────────────
    # BEHAVIOUR
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--timeout", "-t", type=float, help="Read timeout in seconds")
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: $OPENML_LOG_LEVEL or INFO)",
    )
    parser.add_argument("--version", "-v", action="version", version=f"openmlhttp {__version__}")

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("method", choices=["get", "post", "delete"], help="HTTP method")
    parser.add_argument("path", help="REST path below the prefix, e.g. /data/list")
    parser.add_argument(
        "--param", "-p",
        type=_parse_param,
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Request parameter, repeatable, order preserved",
    )
    parser.add_argument(
        "--file", "-f",
        type=_parse_file,
        action="append",
        default=[],
        metavar="FIELD=PATH[:MIME]",
        help="File upload (POST only), MIME type guessed from the extension",
    )

    return parser


def build_config(args: argparse.Namespace) -> ConnectionConfig:
    config = ConnectionConfig.from_env()
    overrides = {
        "host": args.host,
        "port": args.port,
        "prefix": args.prefix,
        "api_key": args.key,
        "read_timeout": args.timeout,
        "log_level": args.log_level,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    if args.test:
        config = config.for_test_server()
    return config


def build_params(args: argparse.Namespace) -> List[Tuple[str, ParamValue]]:
    """Plain parameters first, then one file field per upload, contents as bytes."""
    params: List[Tuple[str, ParamValue]] = list(args.param)
    for field, path, mime in args.file:
        content = Path(path).read_bytes()
        filename = Path(path).name
        params.append((f"{field}|{mime or get_mime_type(filename)}|{filename}", content))
    return params


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
        config.validate()
        params = build_params(args)
    except (ValueError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level)

    try:
        with Connection(config=config) as conn:
            result = getattr(conn, args.method)(args.path, params)
    except OpenMLHTTPError as e:
        print(f"error: {type(e).__name__}: {e}", file=sys.stderr)
        return 2

    if isinstance(result, int) and not isinstance(result, bool):
        print(f"HTTP status {result}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
