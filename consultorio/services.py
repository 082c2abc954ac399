from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable

from sqlalchemy import func, select

from .db import Base, db_session, engine
from .estadisticas import (
    EstadisticasPorHora,
    EstadisticasPorPeriodo,
    FiltroTiempo,
    estadisticas_por_hora,
    estadisticas_por_periodo,
)
from .evaluaciones import (
    EstadoEvaluacion,
    Respuesta,
    TipoEvaluacion,
    calcular_promedios,
    completar_respuestas,
    fusionar_respuestas,
    parsear_respuestas,
    resolver_estado,
    serializar_respuestas,
    tiene_mitad,
    tipo_evaluacion,
    validar_respuestas,
)
from .fechas import clave_orden, formatear_fecha, formatear_hora, parsear_fecha, validar_fecha, validar_hora
from .models import Categoria, Evaluacion, ObraSocial, Paciente, SesionDiaria, Sentimiento, TipoPaciente, utcnow

logger = logging.getLogger(__name__)


# =========================
# Bootstrap DB
# =========================
def init_db() -> None:
    """Crea las tablas si no existen."""
    Base.metadata.create_all(bind=engine)


# =========================
# Helper / DTO
# =========================
@dataclass(frozen=True)
class Esito:
    ok: bool
    id: str | None
    mensaje: str


def _paciente_flat(p: Paciente, sesiones_completadas: int) -> dict[str, Any]:
    return {
        "id": p.id,
        "nombre_paciente": p.nombre_paciente,
        "nombre_kinesiologo": p.nombre_kinesiologo,
        "tipo_paciente": p.tipo_paciente.value,
        "obra_social_id": p.obra_social_id,
        "obra_social": p.obra_social.nombre if p.obra_social else None,
        "categoria_id": p.categoria_id,
        "categoria": p.categoria.nombre if p.categoria else None,
        "nota_lesion": p.nota_lesion,
        "sesiones_totales": p.sesiones_totales,
        "sesiones_completadas": sesiones_completadas,
        "created_at": p.created_at.isoformat() if p.created_at else None,
    }


def _sesion_flat(s: SesionDiaria) -> dict[str, Any]:
    return {
        "id": s.id,
        "paciente_id": s.paciente_id,
        "fecha": s.fecha,
        "hora": s.hora,
        "sentimiento": s.sentimiento.value,
    }


def _conteo_sesiones(s, paciente_ids: Iterable[str]) -> dict[str, int]:
    ids = list(paciente_ids)
    if not ids:
        return {}
    rows = s.execute(
        select(SesionDiaria.paciente_id, func.count(SesionDiaria.id))
        .where(SesionDiaria.paciente_id.in_(ids))
        .group_by(SesionDiaria.paciente_id)
    ).all()
    return {pid: n for pid, n in rows}


def _en_rango(fecha: str, desde: date, hasta: date) -> bool:
    d = parsear_fecha(fecha)
    return d is not None and desde <= d <= hasta


def _rango(fecha_desde: str, fecha_hasta: str) -> tuple[date, date]:
    desde = parsear_fecha(validar_fecha(fecha_desde))
    hasta = parsear_fecha(validar_fecha(fecha_hasta))
    if desde > hasta:
        raise ValueError("La fecha de inicio es posterior a la fecha de fin.")
    return desde, hasta


# =========================
# Pacientes
# =========================
def _validar_paciente(
    s,
    nombre_paciente: str,
    sesiones_totales: int,
    tipo_paciente: TipoPaciente | str,
    obra_social_id: str | None,
    categoria_id: str | None,
) -> tuple[str, TipoPaciente, str | None]:
    nombre = (nombre_paciente or "").strip()
    if not nombre:
        raise ValueError("El nombre del paciente es obligatorio.")
    if int(sesiones_totales) < 1:
        raise ValueError("Las sesiones totales deben ser al menos 1.")

    try:
        tipo = TipoPaciente(tipo_paciente)
    except ValueError:
        raise ValueError(f"Tipo de paciente inválido: '{tipo_paciente}'.") from None

    if tipo is TipoPaciente.OBRA_SOCIAL:
        if not obra_social_id or s.get(ObraSocial, obra_social_id) is None:
            raise ValueError("Un paciente de obra social necesita una obra social válida.")
    else:
        obra_social_id = None

    if categoria_id and s.get(Categoria, categoria_id) is None:
        raise ValueError("Categoría inexistente.")

    return nombre, tipo, obra_social_id


def crear_paciente(
    nombre_paciente: str,
    sesiones_totales: int,
    tipo_paciente: TipoPaciente | str = TipoPaciente.PARTICULAR,
    obra_social_id: str | None = None,
    categoria_id: str | None = None,
    nota_lesion: str | None = None,
    nombre_kinesiologo: str | None = None,
) -> str:
    with db_session() as s:
        nombre, tipo, obra_social_id = _validar_paciente(
            s, nombre_paciente, sesiones_totales, tipo_paciente, obra_social_id, categoria_id
        )
        p = Paciente(
            nombre_paciente=nombre,
            nombre_kinesiologo=(nombre_kinesiologo or "").strip() or None,
            tipo_paciente=tipo,
            obra_social_id=obra_social_id,
            categoria_id=categoria_id or None,
            nota_lesion=nota_lesion,
            sesiones_totales=int(sesiones_totales),
        )
        s.add(p)
        s.flush()
        logger.info("Paciente creado: %s", p.id)
        return p.id


def actualizar_paciente(
    paciente_id: str,
    nombre_paciente: str,
    sesiones_totales: int,
    tipo_paciente: TipoPaciente | str = TipoPaciente.PARTICULAR,
    obra_social_id: str | None = None,
    categoria_id: str | None = None,
    nota_lesion: str | None = None,
    nombre_kinesiologo: str | None = None,
) -> bool:
    with db_session() as s:
        p = s.get(Paciente, paciente_id)
        if not p:
            return False

        nombre, tipo, obra_social_id = _validar_paciente(
            s, nombre_paciente, sesiones_totales, tipo_paciente, obra_social_id, categoria_id
        )
        p.nombre_paciente = nombre
        p.nombre_kinesiologo = (nombre_kinesiologo or "").strip() or None
        p.tipo_paciente = tipo
        p.obra_social_id = obra_social_id
        p.categoria_id = categoria_id or None
        p.nota_lesion = nota_lesion
        p.sesiones_totales = int(sesiones_totales)
        return True


def eliminar_paciente(paciente_id: str) -> bool:
    """Borra el paciente junto con sus sesiones y evaluaciones."""
    with db_session() as s:
        p = s.get(Paciente, paciente_id)
        if not p:
            return False
        s.delete(p)
        logger.info("Paciente eliminado: %s", paciente_id)
        return True


def obtener_paciente(paciente_id: str) -> dict[str, Any] | None:
    with db_session() as s:
        p = s.get(Paciente, paciente_id)
        if not p:
            return None
        completadas = _conteo_sesiones(s, [p.id]).get(p.id, 0)
        out = _paciente_flat(p, completadas)
        out["progreso"] = round(completadas / p.sesiones_totales * 100, 1) if p.sesiones_totales else 0.0
        return out


def lista_pacientes(fecha_desde: str | None = None, fecha_hasta: str | None = None) -> list[dict[str, Any]]:
    """
    Todos los pacientes con su conteo de sesiones.
    Con rango (DD-MM-YYYY) solo los que tienen alguna sesión dentro del rango.
    """
    with db_session() as s:
        q = select(Paciente).order_by(Paciente.nombre_paciente)

        if fecha_desde and fecha_hasta:
            desde, hasta = _rango(fecha_desde, fecha_hasta)
            rows = s.execute(select(SesionDiaria.paciente_id, SesionDiaria.fecha)).all()
            ids = {r.paciente_id for r in rows if _en_rango(r.fecha, desde, hasta)}
            if not ids:
                return []
            q = q.where(Paciente.id.in_(ids))

        pacientes = list(s.scalars(q))
        conteo = _conteo_sesiones(s, [p.id for p in pacientes])
        return [_paciente_flat(p, conteo.get(p.id, 0)) for p in pacientes]


def buscar_pacientes(
    fecha_desde: date | None = None,
    fecha_hasta: date | None = None,
    busqueda: str | None = None,
    pagina: int = 1,
    tamano_pagina: int = 9,
    ahora: datetime | None = None,
) -> dict[str, Any]:
    """
    Listado paginado: pacientes dados de alta en los últimos 12 meses
    (y dentro del rango de alta si se indica), filtrados por nombre del
    paciente o del kinesiólogo.
    """
    ahora = ahora or utcnow()
    hace_12_meses = ahora - timedelta(days=365)
    pagina = max(1, int(pagina))
    tamano_pagina = max(1, int(tamano_pagina))

    with db_session() as s:
        q = select(Paciente).where(Paciente.created_at >= hace_12_meses)
        if fecha_desde and fecha_hasta:
            q = q.where(
                Paciente.created_at >= datetime.combine(fecha_desde, datetime.min.time()),
                Paciente.created_at < datetime.combine(fecha_hasta + timedelta(days=1), datetime.min.time()),
            )
        pacientes = list(s.scalars(q.order_by(Paciente.created_at.desc())))

        if busqueda and busqueda.strip():
            texto = busqueda.strip().lower()
            pacientes = [
                p for p in pacientes
                if texto in p.nombre_paciente.lower() or texto in (p.nombre_kinesiologo or "").lower()
            ]

        total = len(pacientes)
        inicio = (pagina - 1) * tamano_pagina
        pagina_actual = pacientes[inicio:inicio + tamano_pagina]
        conteo = _conteo_sesiones(s, [p.id for p in pagina_actual])

        return {
            "pacientes": [_paciente_flat(p, conteo.get(p.id, 0)) for p in pagina_actual],
            "total": total,
            "total_paginas": math.ceil(total / tamano_pagina),
        }


# =========================
# Sesiones diarias
# =========================
def crear_sesion(paciente_id: str, sentimiento: Sentimiento | str, ahora: datetime | None = None) -> str | None:
    """Registra la sesión de hoy (fecha/hora actuales). None si el paciente no existe."""
    try:
        sent = Sentimiento(sentimiento)
    except ValueError:
        raise ValueError(f"Sentimiento inválido: '{sentimiento}'.") from None

    ahora = ahora or datetime.now()
    with db_session() as s:
        if s.get(Paciente, paciente_id) is None:
            return None
        ses = SesionDiaria(
            paciente_id=paciente_id,
            fecha=formatear_fecha(ahora.date()),
            hora=formatear_hora(ahora),
            sentimiento=sent,
        )
        s.add(ses)
        s.flush()
        return ses.id


def actualizar_sesion(sesion_id: str, fecha: str, hora: str, sentimiento: Sentimiento | str) -> bool:
    fecha = validar_fecha(fecha)
    hora = validar_hora(hora)
    try:
        sent = Sentimiento(sentimiento)
    except ValueError:
        raise ValueError(f"Sentimiento inválido: '{sentimiento}'.") from None

    with db_session() as s:
        ses = s.get(SesionDiaria, sesion_id)
        if not ses:
            return False
        ses.fecha = fecha
        ses.hora = hora
        ses.sentimiento = sent
        return True


def eliminar_sesion(sesion_id: str) -> bool:
    with db_session() as s:
        ses = s.get(SesionDiaria, sesion_id)
        if not ses:
            return False
        s.delete(ses)
        return True


def lista_sesiones(paciente_id: str) -> list[dict[str, Any]]:
    """Sesiones del paciente, la más reciente primero."""
    with db_session() as s:
        sesiones = list(s.scalars(select(SesionDiaria).where(SesionDiaria.paciente_id == paciente_id)))
        sesiones.sort(key=lambda x: clave_orden(x.fecha, x.hora), reverse=True)
        return [_sesion_flat(x) for x in sesiones]


def _ultima_sesion(s, paciente_id: str) -> SesionDiaria | None:
    sesiones = list(s.scalars(select(SesionDiaria).where(SesionDiaria.paciente_id == paciente_id)))
    if not sesiones:
        return None
    return max(sesiones, key=lambda x: clave_orden(x.fecha, x.hora))


def ultima_sesion(paciente_id: str) -> dict[str, Any] | None:
    with db_session() as s:
        ses = _ultima_sesion(s, paciente_id)
        return _sesion_flat(ses) if ses else None


def sesiones_por_rango(fecha_desde: str, fecha_hasta: str) -> dict[str, Any]:
    """
    Sesiones (con nombre del paciente) entre dos fechas DD-MM-YYYY inclusive,
    agrupadas por día en orden cronológico.
    """
    desde, hasta = _rango(fecha_desde, fecha_hasta)

    with db_session() as s:
        rows = s.execute(
            select(
                SesionDiaria.id,
                SesionDiaria.fecha,
                SesionDiaria.hora,
                SesionDiaria.sentimiento,
                SesionDiaria.paciente_id,
                Paciente.nombre_paciente,
                Paciente.nombre_kinesiologo,
            ).join(Paciente, Paciente.id == SesionDiaria.paciente_id)
        ).all()

    en_rango = sorted(
        (r for r in rows if _en_rango(r.fecha, desde, hasta)),
        key=lambda r: clave_orden(r.fecha, r.hora),
    )

    por_dia: dict[str, list[dict[str, Any]]] = {}
    for r in en_rango:
        por_dia.setdefault(r.fecha, []).append(
            {
                "id": r.id,
                "fecha": r.fecha,
                "hora": r.hora,
                "sentimiento": r.sentimiento.value,
                "paciente_id": r.paciente_id,
                "nombre_paciente": r.nombre_paciente,
                "nombre_kinesiologo": r.nombre_kinesiologo,
            }
        )

    logger.debug("Sesiones entre %s y %s: %d", fecha_desde, fecha_hasta, len(en_rango))
    return {
        "data": por_dia,
        "total_sesiones": len(en_rango),
        "dias_con_sesiones": len(por_dia),
    }


def sesiones_flat() -> list[dict[str, str]]:
    """Solo fecha/hora de todas las sesiones (para estadísticas)."""
    with db_session() as s:
        rows = s.execute(select(SesionDiaria.fecha, SesionDiaria.hora)).all()
        return [{"fecha": r.fecha, "hora": r.hora} for r in rows]


# =========================
# Evaluaciones
# =========================
def _evaluaciones_de_sesion(s, sesion_id: str) -> list[Evaluacion]:
    return list(
        s.scalars(
            select(Evaluacion).where(Evaluacion.sesion_id == sesion_id).order_by(Evaluacion.created_at.asc())
        )
    )


def _evaluacion_flat(ev: Evaluacion) -> dict[str, Any]:
    respuestas = parsear_respuestas(ev.respuestas_comprimidas) or []
    try:
        promedios = json.loads(ev.promedios_comprimidos)
    except (TypeError, json.JSONDecodeError):
        promedios = {}
    return {
        "id": ev.id,
        "paciente_id": ev.paciente_id,
        "sesion_id": ev.sesion_id,
        "fecha": ev.fecha,
        "respuestas": [r.model_dump(by_alias=True) for r in respuestas],
        "promedios": promedios,
        "created_at": ev.created_at.isoformat() if ev.created_at else None,
    }


def guardar_evaluacion(
    paciente_id: str,
    tipo: TipoEvaluacion | str,
    respuestas: Iterable[Respuesta | dict],
    on_change: Callable[[str], None] | None = None,
    hoy: date | None = None,
) -> Esito | None:
    """
    Guarda la pre/post evaluación sobre la última sesión del paciente.

    Hay un solo registro por sesión: si ya existe se fusionan las respuestas
    por questionId (las nuevas pisan a las viejas) y se recalculan los
    promedios. `on_change(paciente_id)` se invoca después del commit.
    None si el paciente no existe.
    """
    tipo = TipoEvaluacion(tipo)
    nuevas = validar_respuestas(tipo, respuestas)
    fecha = formatear_fecha(hoy or date.today())

    with db_session() as s:
        if s.get(Paciente, paciente_id) is None:
            return None

        ses = _ultima_sesion(s, paciente_id)
        if ses is None:
            return Esito(False, None, "No se encontró ninguna sesión para este paciente.")

        existentes = _evaluaciones_de_sesion(s, ses.id)
        ev = existentes[0] if existentes else None
        if len(existentes) > 1:
            logger.warning("Sesión %s con %d evaluaciones; se actualiza la primera.", ses.id, len(existentes))

        previas = (parsear_respuestas(ev.respuestas_comprimidas) or []) if ev else []
        repetida = tiene_mitad(previas, tipo)

        # primero el upsert, después los valores por defecto de lo que siga sin respuesta
        fusion = fusionar_respuestas(previas, nuevas)
        fusion = fusionar_respuestas(fusion, completar_respuestas(tipo, fusion))

        if ev is None:
            ev = Evaluacion(paciente_id=paciente_id, sesion_id=ses.id)
            s.add(ev)
        ev.fecha = fecha
        ev.respuestas_comprimidas = serializar_respuestas(fusion)
        ev.promedios_comprimidos = json.dumps(calcular_promedios(fusion))
        s.flush()
        evaluacion_id = ev.id

    logger.info("Evaluación %s guardada (sesión %s, %s)", evaluacion_id, ses.id, tipo.value)

    if on_change is not None:
        on_change(paciente_id)

    if repetida:
        return Esito(True, evaluacion_id, f"Ya existía una {tipo.value}-evaluación para esta sesión: se actualizaron sus respuestas.")
    return Esito(True, evaluacion_id, "Evaluación guardada con éxito.")


def evaluaciones_por_sesion(sesion_id: str) -> list[dict[str, Any]]:
    with db_session() as s:
        return [_evaluacion_flat(ev) for ev in _evaluaciones_de_sesion(s, sesion_id)]


def historial_evaluaciones(paciente_id: str) -> list[dict[str, Any]]:
    """Evaluaciones del paciente (más recientes primero); las ilegibles se omiten."""
    with db_session() as s:
        rows = s.execute(
            select(Evaluacion, SesionDiaria.fecha, SesionDiaria.hora)
            .join(SesionDiaria, SesionDiaria.id == Evaluacion.sesion_id)
            .where(Evaluacion.paciente_id == paciente_id)
            .order_by(Evaluacion.created_at.desc())
        ).all()

        out = []
        for ev, sesion_fecha, sesion_hora in rows:
            respuestas = parsear_respuestas(ev.respuestas_comprimidas)
            if respuestas is None:
                logger.warning("Evaluación %s ilegible, se omite del historial.", ev.id)
                continue
            item = _evaluacion_flat(ev)
            item.update(
                {
                    "tipo": tipo_evaluacion(respuestas),
                    "tiene_pre": tiene_mitad(respuestas, TipoEvaluacion.PRE),
                    "tiene_post": tiene_mitad(respuestas, TipoEvaluacion.POST),
                    "sesion_fecha": sesion_fecha,
                    "sesion_hora": sesion_hora,
                }
            )
            out.append(item)
        return out


def estado_evaluacion(paciente_id: str) -> EstadoEvaluacion:
    """Estado pre/post de la última sesión del paciente."""
    with db_session() as s:
        ses = _ultima_sesion(s, paciente_id)
        if ses is None:
            return EstadoEvaluacion()
        payloads = [ev.respuestas_comprimidas for ev in _evaluaciones_de_sesion(s, ses.id)]
        return resolver_estado(payloads, ultima_sesion=_sesion_flat(ses))


# =========================
# Categorías / Obras sociales
# =========================
def _catalogo_flat(x: Categoria | ObraSocial, cantidad_pacientes: int = 0) -> dict[str, Any]:
    return {
        "id": x.id,
        "nombre": x.nombre,
        "descripcion": x.descripcion,
        "cantidad_pacientes": cantidad_pacientes,
        "created_at": x.created_at.isoformat() if x.created_at else None,
    }


def _validar_nombre(s, modelo, nombre: str, excluir_id: str | None = None) -> str:
    nombre = (nombre or "").strip()
    if not nombre:
        raise ValueError("El nombre es obligatorio.")
    q = select(modelo).where(func.lower(modelo.nombre) == nombre.lower())
    if excluir_id:
        q = q.where(modelo.id != excluir_id)
    if s.execute(q).scalars().first() is not None:
        raise ValueError(f"Ya existe '{nombre}'.")
    return nombre


def _crear_catalogo(modelo, nombre: str, descripcion: str | None) -> str:
    with db_session() as s:
        x = modelo(nombre=_validar_nombre(s, modelo, nombre), descripcion=(descripcion or "").strip() or None)
        s.add(x)
        s.flush()
        return x.id


def _actualizar_catalogo(modelo, item_id: str, nombre: str, descripcion: str | None) -> bool:
    with db_session() as s:
        x = s.get(modelo, item_id)
        if not x:
            return False
        x.nombre = _validar_nombre(s, modelo, nombre, excluir_id=item_id)
        x.descripcion = (descripcion or "").strip() or None
        return True


def _eliminar_catalogo(modelo, columna, item_id: str, etiqueta: str) -> Esito | None:
    """No se borra mientras haya pacientes asignados."""
    with db_session() as s:
        x = s.get(modelo, item_id)
        if not x:
            return None
        asignados = s.execute(select(func.count(Paciente.id)).where(columna == item_id)).scalar_one()
        if asignados:
            return Esito(False, item_id, f"No se puede eliminar la {etiqueta}: tiene {asignados} paciente(s) asignado(s).")
        s.delete(x)
        return Esito(True, item_id, f"{etiqueta.capitalize()} eliminada con éxito.")


def _lista_catalogo(modelo, columna) -> list[dict[str, Any]]:
    with db_session() as s:
        conteo = dict(
            s.execute(
                select(columna, func.count(Paciente.id)).where(columna.is_not(None)).group_by(columna)
            ).all()
        )
        return [_catalogo_flat(x, conteo.get(x.id, 0)) for x in s.scalars(select(modelo).order_by(modelo.nombre))]


def crear_categoria(nombre: str, descripcion: str | None = None) -> str:
    return _crear_catalogo(Categoria, nombre, descripcion)


def actualizar_categoria(categoria_id: str, nombre: str, descripcion: str | None = None) -> bool:
    return _actualizar_catalogo(Categoria, categoria_id, nombre, descripcion)


def eliminar_categoria(categoria_id: str) -> Esito | None:
    return _eliminar_catalogo(Categoria, Paciente.categoria_id, categoria_id, "categoría")


def lista_categorias() -> list[dict[str, Any]]:
    return _lista_catalogo(Categoria, Paciente.categoria_id)


def crear_obra_social(nombre: str, descripcion: str | None = None) -> str:
    return _crear_catalogo(ObraSocial, nombre, descripcion)


def actualizar_obra_social(obra_social_id: str, nombre: str, descripcion: str | None = None) -> bool:
    return _actualizar_catalogo(ObraSocial, obra_social_id, nombre, descripcion)


def eliminar_obra_social(obra_social_id: str) -> Esito | None:
    return _eliminar_catalogo(ObraSocial, Paciente.obra_social_id, obra_social_id, "obra social")


def lista_obras_sociales() -> list[dict[str, Any]]:
    return _lista_catalogo(ObraSocial, Paciente.obra_social_id)


# =========================
# Estadísticas
# =========================
def estadisticas_horarias(fecha: str | None = None) -> EstadisticasPorHora:
    return estadisticas_por_hora(sesiones_flat(), fecha=fecha)


def estadisticas_periodicas(filtro: FiltroTiempo | str, ahora: datetime | None = None) -> EstadisticasPorPeriodo:
    return estadisticas_por_periodo(sesiones_flat(), filtro, ahora=ahora)
