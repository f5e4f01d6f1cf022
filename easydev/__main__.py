# File: easydev/__main__.py
"""
easydev — Module entry point.

Allows running the tool directly via::

    python -m easydev make:crud Post --fields title:string

This module simply delegates to the CLI entry point defined in ``easydev.cli``.
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from easydev.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
