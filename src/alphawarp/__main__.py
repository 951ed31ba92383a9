"""Module entrypoint for `python -m alphawarp`."""

from __future__ import annotations

from alphawarp.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
