"""
Helpers para las fechas/horas guardadas como texto.

Las sesiones guardan `fecha` como "DD-MM-YYYY" y `hora` como "HH:MM" (24h).
Los `parsear_*` devuelven None ante datos malformados (quien llama decide si
descartar); los `validar_*` levantan ValueError (formularios / API).
"""
from __future__ import annotations

from datetime import date, datetime

FORMATO_FECHA = "%d-%m-%Y"
FORMATO_HORA = "%H:%M"


def formatear_fecha(d: date) -> str:
    return d.strftime(FORMATO_FECHA)


def formatear_hora(dt: datetime) -> str:
    return dt.strftime(FORMATO_HORA)


def parsear_fecha(valor: str | None) -> date | None:
    if not valor or not isinstance(valor, str):
        return None
    try:
        return datetime.strptime(valor.strip(), FORMATO_FECHA).date()
    except ValueError:
        return None


def parsear_hora(valor: str | None) -> int | None:
    """Solo la componente hora de "HH:MM" (también tolera "H:MM" o "HH")."""
    if not valor or not isinstance(valor, str):
        return None
    try:
        return int(valor.strip().split(":")[0])
    except ValueError:
        return None


def validar_fecha(valor: str) -> str:
    d = parsear_fecha(valor)
    if d is None:
        raise ValueError(f"Fecha inválida: '{valor}' (formato DD-MM-YYYY).")
    return formatear_fecha(d)


def validar_hora(valor: str) -> str:
    try:
        t = datetime.strptime((valor or "").strip(), FORMATO_HORA)
    except ValueError:
        raise ValueError(f"Hora inválida: '{valor}' (formato HH:MM).") from None
    return t.strftime(FORMATO_HORA)


def clave_orden(fecha: str, hora: str) -> tuple[date, str]:
    """Clave para ordenar sesiones cronológicamente (las malformadas quedan primero)."""
    return (parsear_fecha(fecha) or date.min, hora or "")
