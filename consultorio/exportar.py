"""
Exportación a Excel de las sesiones de un rango de fechas.

Dos hojas:
- "Sesiones por Día": un bloque por día (NOMBRE | COLOR | HORA)
- "Resumen": totales por día y por color
"""
from __future__ import annotations

import io
import logging

import pandas as pd

from .fechas import FORMATO_FECHA
from .services import sesiones_por_rango

logger = logging.getLogger(__name__)

HOJA_SESIONES = "Sesiones por Día"
HOJA_RESUMEN = "Resumen"
COLORES = ("verde", "amarillo", "rojo")


def nombre_archivo(fecha_desde: str, fecha_hasta: str) -> str:
    return f"sesiones_{fecha_desde}_a_{fecha_hasta}.xlsx"


def _dias(fecha_desde: str, fecha_hasta: str) -> list[str]:
    rango = pd.date_range(
        pd.to_datetime(fecha_desde, format=FORMATO_FECHA),
        pd.to_datetime(fecha_hasta, format=FORMATO_FECHA),
        freq="D",
    )
    return [d.strftime(FORMATO_FECHA) for d in rango]


def _cabecera(titulo: str, fecha_desde: str, fecha_hasta: str, total: int, dias: int) -> list[list]:
    return [
        [titulo],
        [""],
        ["Rango de fechas:", f"{fecha_desde} - {fecha_hasta}"],
        ["Total de sesiones:", total],
        ["Días con sesiones:", dias],
        [""],
    ]


def filas_sesiones(fecha_desde: str, fecha_hasta: str, resultado: dict) -> list[list]:
    por_dia = resultado["data"]
    filas = _cabecera(
        "SESIONES POR DÍA", fecha_desde, fecha_hasta, resultado["total_sesiones"], resultado["dias_con_sesiones"]
    )
    for dia in _dias(fecha_desde, fecha_hasta):
        filas.append([f"DÍA: {dia}"])
        filas.append(["NOMBRE", "COLOR", "HORA"])
        sesiones = por_dia.get(dia, [])
        if sesiones:
            for s in sesiones:
                filas.append([s["nombre_paciente"], s["sentimiento"].upper(), s["hora"]])
        else:
            filas.append(["No hay sesiones registradas para este día", "", ""])
        filas.append([""])
        filas.append([""])
    return filas


def filas_resumen(fecha_desde: str, fecha_hasta: str, resultado: dict) -> list[list]:
    por_dia = resultado["data"]
    filas = _cabecera(
        "RESUMEN DE SESIONES", fecha_desde, fecha_hasta, resultado["total_sesiones"], resultado["dias_con_sesiones"]
    )
    filas.append(["FECHA", "TOTAL SESIONES", "VERDE", "AMARILLO", "ROJO"])
    for dia in _dias(fecha_desde, fecha_hasta):
        sesiones = por_dia.get(dia, [])
        filas.append([dia, len(sesiones)] + [sum(1 for s in sesiones if s["sentimiento"] == c) for c in COLORES])
    return filas


def exportar_sesiones_excel(fecha_desde: str, fecha_hasta: str) -> bytes:
    """Genera el .xlsx en memoria. ValueError si el rango es inválido."""
    resultado = sesiones_por_rango(fecha_desde, fecha_hasta)

    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame(filas_sesiones(fecha_desde, fecha_hasta, resultado)).to_excel(
            writer, sheet_name=HOJA_SESIONES, header=False, index=False
        )
        pd.DataFrame(filas_resumen(fecha_desde, fecha_hasta, resultado)).to_excel(
            writer, sheet_name=HOJA_RESUMEN, header=False, index=False
        )

    logger.info(
        "Excel generado %s - %s: %d sesiones", fecha_desde, fecha_hasta, resultado["total_sesiones"]
    )
    return buf.getvalue()
