"""
Database setup for the change-event journal.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def create_session_factory(database_url: str):
    """Create an engine for ``database_url``, ensure tables exist and return a session factory."""
    connect_args = {}
    engine_kwargs = {}
    if database_url.startswith("sqlite"):
        # Sessions are opened from the sweep worker threads as well
        connect_args["check_same_thread"] = False
        if ":memory:" in database_url:
            engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, connect_args=connect_args, **engine_kwargs)

    from .models import change_record  # noqa: F401  registers the table on Base

    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
