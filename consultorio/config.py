from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

# Raíz del repo (junto a streamlit_app.py)
ROOT_DIR = Path(__file__).resolve().parents[1]

load_dotenv(ROOT_DIR / ".env")


class Settings(BaseModel):
    """
    Configuración leída del entorno (o de un .env en la raíz).
    En producción: cambiar siempre JWT_SECRET.
    """
    database_url: str = f"sqlite:///{ROOT_DIR / 'consultorio.sqlite'}"
    jwt_secret: str = "CHANGE_ME_DEV_SECRET"
    jwt_expire_minutes: int = 60
    log_level: str = "INFO"
    api_base: str = "http://127.0.0.1:8000"

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            jwt_secret=os.getenv("JWT_SECRET", defaults.jwt_secret),
            jwt_expire_minutes=int(os.getenv("JWT_EXPIRE_MINUTES", str(defaults.jwt_expire_minutes))),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
            api_base=os.getenv("API_BASE", defaults.api_base),
        )


settings = Settings.from_env()
