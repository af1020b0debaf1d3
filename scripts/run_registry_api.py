"""Helper to launch the registry API from a source checkout."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the pub registry API locally.")
    parser.add_argument("--host", default=None, help="Bind address (overrides settings/env).")
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (overrides settings/env).",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable uvicorn auto-reload (overrides settings/env).",
    )
    parser.add_argument(
        "--log-level",
        choices=["critical", "error", "warning", "info", "debug", "trace"],
        default=None,
        help="Log level for registry and uvicorn output (overrides settings/env).",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()

    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "registry" / "src"))

    # Import after sys.path is adjusted
    from registry_api.config.settings import load_settings
    from registry_api.server import run_server

    run_server(
        load_settings(),
        host=args.host,
        port=args.port,
        reload=True if args.reload else None,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
