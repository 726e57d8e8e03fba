# gradian/__main__.py
"""
Entry point for ``python -m gradian <command>``; dispatches to the typer CLI.
"""

from .cli import app


def main() -> None:
    app(prog_name="gradian")


if __name__ == "__main__":
    main()
