from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from scripture_engine.config import Settings
from scripture_engine.errors import ConfigurationError

# Imported for its side effect of registering the tables on SQLModel.metadata.
from scripture_engine.services import sql_model  # noqa: F401


def build_engine(db_url: str | None = None, settings: Settings | None = None, echo: bool = False):
    if db_url is None:
        settings = settings or Settings.from_env()
        db_url = settings.db_url
    if not db_url:
        raise ConfigurationError("DATABASE URL IS NOT SET (SCRIPTURE_DB_URL)")

    if db_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database.
        return create_engine(
            db_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(db_url, echo=echo)


def create_tables(engine) -> None:
    SQLModel.metadata.create_all(engine)


