#!/usr/bin/env python3
"""Run Home Central database migrations.

Usage:
    python -m homecentral.scripts.run_migrations [upgrade|downgrade|current|history]
"""

import argparse
import os

from alembic import command
from alembic.config import Config

ALEMBIC_INI = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "alembic.ini")


def _config() -> Config:
    cfg = Config(ALEMBIC_INI)
    # script_location is relative to the ini file, not the caller's cwd.
    cfg.set_main_option("script_location", os.path.join(os.path.dirname(ALEMBIC_INI), "migrations"))
    return cfg


def upgrade(revision: str = "head") -> None:
    """Run migrations up to ``revision``."""
    command.upgrade(_config(), revision)
    print(f"Migrated to {revision}")


def downgrade(revision: str = "-1") -> None:
    command.downgrade(_config(), revision)
    print(f"Downgraded to {revision}")


def current() -> None:
    command.current(_config(), verbose=True)


def history() -> None:
    command.history(_config(), verbose=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run Home Central database migrations")
    parser.add_argument(
        "command",
        choices=["upgrade", "downgrade", "current", "history"],
        default="upgrade",
        nargs="?",
    )
    parser.add_argument("--revision", default=None, help="Target revision (upgrade: head, downgrade: -1)")
    args = parser.parse_args()

    if args.command == "upgrade":
        upgrade(args.revision or "head")
    elif args.command == "downgrade":
        downgrade(args.revision or "-1")
    elif args.command == "current":
        current()
    else:
        history()


if __name__ == "__main__":
    main()
