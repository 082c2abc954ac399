"""
Estadísticas de sesiones (histogramas).

- por hora del día: una barra por hora entre 7 y 20, opcionalmente para un solo día
- por período: ventana móvil hacia atrás desde "ahora"
  (semanal, mensual, trimestral, semestral, anual)

Funciones puras: reciben las sesiones ya cargadas (dicts u objetos con
`fecha` "DD-MM-YYYY" y `hora` "HH:MM") y no hacen I/O. Los datos malformados
o fuera de ventana se descartan, nunca se levanta error.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable

from .fechas import parsear_fecha, parsear_hora

logger = logging.getLogger(__name__)

HORA_INICIO = 7
HORA_FIN = 20  # incluida

DIAS_ABREV = ["Lun", "Mar", "Mié", "Jue", "Vie", "Sáb", "Dom"]
MESES_ABREV = ["Ene", "Feb", "Mar", "Abr", "May", "Jun", "Jul", "Ago", "Sep", "Oct", "Nov", "Dic"]
ORDINALES = {1: "1er", 2: "2do", 3: "3er", 4: "4to"}


class FiltroTiempo(str, enum.Enum):
    SEMANAL = "semanal"
    MENSUAL = "mensual"
    TRIMESTRAL = "trimestral"
    SEMESTRAL = "semestral"
    ANUAL = "anual"


# =========================
# DTO
# =========================
@dataclass(frozen=True)
class DatoPorHora:
    hora: str
    cantidad: int
    hora_display: str


@dataclass(frozen=True)
class DatoPorPeriodo:
    periodo: str
    cantidad: int


@dataclass(frozen=True)
class EstadisticasPorHora:
    datos: tuple[DatoPorHora, ...]
    total_sesiones: int

    @property
    def hora_pico(self) -> str | None:
        """Etiqueta (display) de la hora con más sesiones; None si no hay ninguna."""
        if not self.datos:
            return None
        pico = max(self.datos, key=lambda d: d.cantidad)
        return pico.hora_display if pico.cantidad > 0 else None

    def as_dict(self) -> dict[str, Any]:
        return {
            "datos": [asdict(d) for d in self.datos],
            "total_sesiones": self.total_sesiones,
            "hora_pico": self.hora_pico,
        }


@dataclass(frozen=True)
class EstadisticasPorPeriodo:
    filtro: FiltroTiempo
    datos: tuple[DatoPorPeriodo, ...]
    total_sesiones: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "filtro": self.filtro.value,
            "datos": [asdict(d) for d in self.datos],
            "total_sesiones": self.total_sesiones,
        }


@dataclass(frozen=True)
class _Bucket:
    etiqueta: str
    inicio: date
    fin: date  # excluido

    def contiene(self, d: date) -> bool:
        return self.inicio <= d < self.fin


def _campo(sesion: Any, nombre: str) -> Any:
    if isinstance(sesion, dict):
        return sesion.get(nombre)
    return getattr(sesion, nombre, None)


# =========================
# Por hora
# =========================
def hora_display(hora: int) -> str:
    if hora == 12:
        return "12 PM"
    if hora > 12:
        return f"{hora - 12} PM"
    return f"{hora} AM"


def estadisticas_por_hora(sesiones: Iterable[Any], fecha: str | None = None) -> EstadisticasPorHora:
    """
    Histograma por hora (07:00..20:00).

    `total_sesiones` cuenta las sesiones que pasan el filtro de fecha, aunque
    su hora quede fuera de 7-20 o sea ilegible.
    """
    if fecha:
        filtradas = [s for s in sesiones if _campo(s, "fecha") == fecha]
    else:
        filtradas = list(sesiones)

    conteo = {h: 0 for h in range(HORA_INICIO, HORA_FIN + 1)}
    for s in filtradas:
        h = parsear_hora(_campo(s, "hora"))
        if h is None or h not in conteo:
            logger.debug("Sesión fuera de la franja horaria: hora=%r", _campo(s, "hora"))
            continue
        conteo[h] += 1

    datos = tuple(
        DatoPorHora(hora=f"{h:02d}:00", cantidad=c, hora_display=hora_display(h))
        for h, c in conteo.items()
    )
    return EstadisticasPorHora(datos=datos, total_sesiones=len(filtradas))


# =========================
# Por período
# =========================
def get_week_start(d: date) -> date:
    """Lunes de la semana de `d`."""
    return d - timedelta(days=d.weekday())


def _etiqueta_semana(inicio: date, fin: date) -> str:
    if inicio.month == fin.month:
        return f"{inicio.day}-{fin.day} {MESES_ABREV[fin.month - 1]}"
    return f"{inicio.day} {MESES_ABREV[inicio.month - 1]}-{fin.day} {MESES_ABREV[fin.month - 1]}"


def _buckets_semanal(hoy: date) -> list[_Bucket]:
    out = []
    for i in range(6, -1, -1):
        d = hoy - timedelta(days=i)
        out.append(_Bucket(f"{DIAS_ABREV[d.weekday()]} {d.day}/{d.month}", d, d + timedelta(days=1)))
    return out


def _buckets_mensual(hoy: date) -> list[_Bucket]:
    lunes = get_week_start(hoy)
    out = []
    for i in range(3, -1, -1):
        inicio = lunes - timedelta(weeks=i)
        domingo = inicio + timedelta(days=6)
        out.append(_Bucket(_etiqueta_semana(inicio, domingo), inicio, inicio + timedelta(days=7)))
    return out


def _buckets_por_meses(hoy: date, meses: int, cantidad: int, nombre: str) -> list[_Bucket]:
    """Períodos calendario de `meses` meses (3 = trimestre, 6 = semestre), incluido el actual."""
    por_anio = 12 // meses
    actual = hoy.year * por_anio + (hoy.month - 1) // meses

    def inicio_de(idx: int) -> date:
        return date(idx // por_anio, (idx % por_anio) * meses + 1, 1)

    out = []
    for idx in range(actual - cantidad + 1, actual + 1):
        numero = idx % por_anio + 1
        out.append(_Bucket(f"{ORDINALES[numero]} {nombre} {idx // por_anio}", inicio_de(idx), inicio_de(idx + 1)))
    return out


def _buckets_anual(hoy: date) -> list[_Bucket]:
    return [_Bucket(str(y), date(y, 1, 1), date(y + 1, 1, 1)) for y in range(hoy.year - 2, hoy.year + 1)]


def generar_buckets(filtro: FiltroTiempo | str, ahora: datetime | None = None) -> list[_Bucket]:
    filtro = FiltroTiempo(filtro)
    hoy = (ahora or datetime.now()).date()

    if filtro is FiltroTiempo.SEMANAL:
        return _buckets_semanal(hoy)
    if filtro is FiltroTiempo.MENSUAL:
        return _buckets_mensual(hoy)
    if filtro is FiltroTiempo.TRIMESTRAL:
        return _buckets_por_meses(hoy, meses=3, cantidad=4, nombre="Trimestre")
    if filtro is FiltroTiempo.SEMESTRAL:
        return _buckets_por_meses(hoy, meses=6, cantidad=4, nombre="Semestre")
    return _buckets_anual(hoy)


def estadisticas_por_periodo(
    sesiones: Iterable[Any],
    filtro: FiltroTiempo | str,
    ahora: datetime | None = None,
) -> EstadisticasPorPeriodo:
    """
    Histograma por período, del más antiguo al más reciente.
    Cada sesión cae como mucho en un bucket; las que quedan fuera de la
    ventana (o con fecha ilegible) no se cuentan.
    """
    filtro = FiltroTiempo(filtro)
    buckets = generar_buckets(filtro, ahora)
    conteo = [0] * len(buckets)

    for s in sesiones:
        d = parsear_fecha(_campo(s, "fecha"))
        if d is None:
            logger.debug("Sesión con fecha ilegible: %r", _campo(s, "fecha"))
            continue
        for i, b in enumerate(buckets):
            if b.contiene(d):
                conteo[i] += 1
                break

    datos = tuple(DatoPorPeriodo(periodo=b.etiqueta, cantidad=c) for b, c in zip(buckets, conteo))
    return EstadisticasPorPeriodo(filtro=filtro, datos=datos, total_sesiones=sum(conteo))
