from __future__ import annotations

from alembic import command
from alembic.config import Config

from rbac_admin.infra.logging import configure_logging, get_logger


def run_upgrade_head() -> None:
    config = Config("alembic.ini")
    get_logger(__name__).info("migration_started", target="head")
    command.upgrade(config, "head")


if __name__ == "__main__":
    configure_logging()
    run_upgrade_head()
