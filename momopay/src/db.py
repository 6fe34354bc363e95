"""Engine y sesiones SQLAlchemy compartidas por servicios y rutas."""

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import Config


Base = declarative_base()
SessionLocal = scoped_session(sessionmaker(autoflush=False, expire_on_commit=False))

_engine: Optional[Engine] = None


def init_db(url: Optional[str] = None) -> Engine:
    global _engine
    url = url or Config.DATABASE_URL
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # una sola conexión para que la base en memoria sobreviva entre sesiones
            kwargs["poolclass"] = StaticPool
    _engine = create_engine(url, **kwargs)
    SessionLocal.remove()
    SessionLocal.configure(bind=_engine)

    from . import models  # noqa: F401  registra las tablas en Base.metadata

    Base.metadata.create_all(bind=_engine)
    return _engine


def drop_db() -> None:
    if _engine is not None:
        SessionLocal.remove()
        Base.metadata.drop_all(bind=_engine)
