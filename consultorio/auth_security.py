"""Contraseñas (bcrypt) y tokens de acceso (JWT HS256) del personal."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import settings

logger = logging.getLogger(__name__)

JWT_ALG = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(usuario_id: str, username: str, expire_minutes: int | None = None) -> str:
    """Token con el id del usuario en `sub`; vence a los JWT_EXPIRE_MINUTES."""
    emitido = datetime.now(timezone.utc)
    minutos = settings.jwt_expire_minutes if expire_minutes is None else expire_minutes
    payload = {
        "sub": usuario_id,
        "username": username,
        "iat": int(emitido.timestamp()),
        "exp": int((emitido + timedelta(minutes=minutos)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALG)


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALG])


def get_subject(token: str) -> str | None:
    """Id del usuario, o None si el token está vencido, mal firmado o ilegible."""
    try:
        return decode_token(token).get("sub")
    except JWTError as e:
        logger.info("Token rechazado: %s", e)
        return None
