"""Initialize database tables."""
from sqlmodel import SQLModel
from sqlalchemy.engine import Engine
import logging

# Imported for their side effect of registering tables on SQLModel.metadata
from coach_app.models import User, Task, Notification, InAppMessage  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(engine: Engine, reset: bool = False):
    """Create all tables in the database; ``reset`` drops them first."""
    if reset:
        logger.info("[DB INIT] Dropping tables before recreating them...")
        SQLModel.metadata.drop_all(engine)

    logger.info("[DB INIT] Creating all tables...")
    SQLModel.metadata.create_all(engine)
    logger.info("[DB INIT] Tables created successfully.")


if __name__ == "__main__":
    from coach_app.db.config import engine as default_engine

    logging.basicConfig(level=logging.INFO)
    init_db(default_engine)
