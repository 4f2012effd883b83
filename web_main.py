"""
Entry point for the chessrooms server.

    uv run python web_main.py                     ← reads ./config.yaml if present
    CHESSROOMS_CONFIG=prod.yaml uv run python web_main.py

Runs a single uvicorn worker: all rooms live in this process's memory.
"""

from __future__ import annotations

import os
import sys

import uvicorn
from rich.console import Console

from chessrooms.config import load_config_or_default

console = Console(legacy_windows=False)


def main() -> None:
    config_path = os.environ.get("CHESSROOMS_CONFIG", "config.yaml")
    try:
        config = load_config_or_default(config_path, required="CHESSROOMS_CONFIG" in os.environ)
    except FileNotFoundError as exc:
        console.print(f"[red]Error:[/] {exc}")
        sys.exit(1)
    except ValueError as exc:
        console.print(f"[red]Config error:[/] {exc}")
        sys.exit(1)

    console.print(
        f"[bold]chessrooms[/] on [cyan]http://{config.server.host}:{config.server.port}[/]  "
        f"[dim](clock {config.clock.default_seconds}s, log {config.logging.file})[/]"
    )
    uvicorn.run(
        "chessrooms.web.app:app",
        host=config.server.host,
        port=config.server.port,
        workers=1,
    )


if __name__ == "__main__":
    main()
