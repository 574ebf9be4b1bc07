"""Command-line interface for trackloom.

- app: The Typer application; ``trackloom`` console script entry point.
- All output goes through a rich Console, with a progress bar fed by a load
  listener while a folder is being loaded.
"""

from trackloom.cli.commands import app, main

__all__ = ["app", "main"]
