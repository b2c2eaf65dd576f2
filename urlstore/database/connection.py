from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


Base = declarative_base()


def is_memory_database(database_url: str) -> bool:
    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and (
        url.database in (None, "", ":memory:") or url.query.get("mode") == "memory"
    )


def make_engine(database_url: str, pool_size: int = 10, pool_timeout: float = 30.0) -> Engine:
    """
    Create an engine with a bounded connection pool.

    max_overflow=0 keeps the pool at exactly `pool_size` connections; callers
    beyond that wait up to `pool_timeout` seconds and then fail.

    An in-memory SQLite database lives inside a single connection, so it gets
    a StaticPool shared by every thread and the pool limits don't apply.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Pooled connections are shared between worker threads
        connect_args["check_same_thread"] = False

    if is_memory_database(database_url):
        return create_engine(database_url, poolclass=StaticPool, connect_args=connect_args)

    return create_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=0,
        pool_timeout=pool_timeout,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
