"""
Create a database (if needed), its tables and the seeded catalog. Run from project root:
  python -m audit_intake.seed [--database NAME] [--seed-file PATH]
Without --database the database named in DATABASE_URL is used.
"""
import argparse
import logging
import sys

from audit_intake.core.config import get_settings
from audit_intake.core.log import configure_logging
from audit_intake.services.initializer import initialize_database

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Initialize an audit database and seed its catalog.")
    parser.add_argument("--database", help="Database name on the configured server")
    parser.add_argument("--seed-file", help="JSON array of catalog titles (defaults to the built-in list)")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)
    result = initialize_database(
        settings.DATABASE_URL,
        database=args.database,
        seed_file=args.seed_file or settings.CATALOG_SEED_FILE,
        created_by_id=settings.DEFAULT_CREATED_BY_ID,
    )
    if not result.ok:
        print(f"Initialization failed: {result.error}", file=sys.stderr)
        return 1
    logger.info(
        "Initialized %s: database_created=%s tables_created=%s seeded=%s",
        result.database or "(default)",
        result.database_created,
        result.tables_created,
        result.seeded,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
