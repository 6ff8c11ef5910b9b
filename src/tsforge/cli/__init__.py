"""
CLI layer for tsforge.

Typer application whose commands delegate to ``tsforge.build``. This
package handles only terminal transport: argument parsing, coloured
output and table formatting.

Entry point::

    tsforge --help
"""

from tsforge.cli.app import app

__all__ = ["app"]
