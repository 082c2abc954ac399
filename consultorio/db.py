from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings

DATABASE_URL = settings.database_url

# la API (threadpool de FastAPI), la CLI y Streamlit comparten el mismo archivo SQLite
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, echo=False, future=True, connect_args=connect_args)

# autenticar y get_usuario_by_id devuelven el Usuario fuera de la sesión
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False)


class Base(DeclarativeBase):
    """Pacientes, sesiones, evaluaciones, catálogos y usuarios."""


@contextmanager
def db_session() -> Iterator[Session]:
    """Una sesión por operación de servicio: commit al salir, rollback si algo levanta."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
