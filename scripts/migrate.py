"""Script to run database migrations."""

import sys

from alembic import command
from alembic.config import Config


def run_migrations() -> None:
    """Run database migrations to latest version."""
    alembic_cfg = Config("alembic.ini")

    try:
        print("Running database migrations...")
        command.upgrade(alembic_cfg, "head")
        print("✓ Migrations completed successfully!")
    except Exception as e:
        print(f"✗ Migration failed: {e}", file=sys.stderr)
        sys.exit(1)


def downgrade(revision: str) -> None:
    """Downgrade the schema to a given revision."""
    alembic_cfg = Config("alembic.ini")

    try:
        print(f"Downgrading database to {revision}...")
        command.downgrade(alembic_cfg, revision)
        print("✓ Downgrade completed successfully!")
    except Exception as e:
        print(f"✗ Downgrade failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    if len(sys.argv) > 2 and sys.argv[1] == "downgrade":
        downgrade(sys.argv[2])
    elif len(sys.argv) > 1:
        print("Usage: python scripts/migrate.py [downgrade <revision>]")
        sys.exit(1)
    else:
        run_migrations()
