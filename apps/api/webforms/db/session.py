from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url


def build_engine(url: str) -> Engine:
    """Create the engine used by database storage."""
    backend = make_url(url).get_backend_name()
    connect_args = {}
    if backend.startswith("postgresql"):
        connect_args["options"] = "-c timezone=utc"
    elif backend == "sqlite":
        # Inserts run in worker threads
        connect_args["check_same_thread"] = False

    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)
