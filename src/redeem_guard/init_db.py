"""Create (or recreate) the fraud guard tables without running migrations.

Intended for local development against SQLite; deployments use Alembic.
"""

import argparse
import logging

from redeem_guard.core.logging import configure_logging
from redeem_guard.db.session import create_tables, drop_tables

logger = logging.getLogger(__name__)


def init_db(*, reset: bool = False) -> None:
    """Initialize the database by creating all tables."""
    if reset:
        drop_tables()
    create_tables()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--reset", action="store_true", help="drop existing tables first")
    args = parser.parse_args()

    configure_logging()
    init_db(reset=args.reset)
    logger.info("Database initialized")


if __name__ == "__main__":
    main()
