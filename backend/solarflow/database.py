"""Database engine, session factory and declarative base."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from solarflow.config import settings


def _connect_args(database_url: str, statement_timeout_ms: int) -> dict:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}  # Required for SQLite
    if database_url.startswith("postgresql") and statement_timeout_ms > 0:
        return {"options": f"-c statement_timeout={statement_timeout_ms}"}
    return {}


def build_engine(database_url: str, echo: bool = False, statement_timeout_ms: int = 0):
    """Create an engine with the connect arguments the backend needs."""
    return create_engine(
        database_url,
        connect_args=_connect_args(database_url, statement_timeout_ms),
        echo=echo,
    )


engine = build_engine(
    settings.database_url,
    echo=settings.sql_echo,
    statement_timeout_ms=settings.statement_timeout_ms,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
