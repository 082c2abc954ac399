"""Cuentas del personal del consultorio (no hay registro público)."""
from __future__ import annotations

import logging

from sqlalchemy import delete, select

from .auth_models import Usuario
from .auth_security import hash_password, verify_password
from .db import db_session

logger = logging.getLogger(__name__)


def _normalizar(username: str) -> str:
    return (username or "").strip().lower()


def _por_username(s, username: str) -> Usuario | None:
    return s.execute(select(Usuario).where(Usuario.username == username)).scalar_one_or_none()


def crear_usuario(username: str, password: str) -> str:
    username = _normalizar(username)
    if not username or not password:
        raise ValueError("Usuario y contraseña son obligatorios.")

    with db_session() as s:
        if _por_username(s, username):
            raise ValueError(f"El usuario '{username}' ya existe.")

        u = Usuario(username=username, password_hash=hash_password(password), is_active=True)
        s.add(u)
        s.flush()
        logger.info("Usuario del consultorio creado: %s", username)
        return u.id


def autenticar(username: str, password: str) -> Usuario | None:
    """None si el usuario no existe, está inactivo o la contraseña no coincide."""
    username = _normalizar(username)
    with db_session() as s:
        u = _por_username(s, username)
        if u is None or not u.is_active or not verify_password(password, u.password_hash):
            logger.info("Login rechazado para '%s'", username)
            return None
        return u


def get_usuario_by_id(user_id: str) -> Usuario | None:
    with db_session() as s:
        return s.get(Usuario, user_id)


def eliminar_usuario(username: str) -> bool:
    username = _normalizar(username)
    with db_session() as s:
        borrados = s.execute(delete(Usuario).where(Usuario.username == username)).rowcount
    if borrados:
        logger.info("Usuario del consultorio eliminado: %s", username)
    return borrados > 0
