"""Module entry point: python -m railtrack ..."""

from __future__ import annotations

from railtrack.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
