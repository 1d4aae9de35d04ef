"""
Entry point for `python -m racecheck.main`.
"""

from .cli import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
