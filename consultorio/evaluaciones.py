"""
Evaluaciones pre/post sesión.

Una evaluación guarda una lista de respuestas {questionId, value}; el sufijo
del questionId ("_pre" / "_post") indica a qué mitad pertenece. Los minutos de
sesión se registran pero no entran nunca en un promedio.
"""
from __future__ import annotations

import enum
import json
import logging
from dataclasses import asdict, dataclass
import math
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

SUFIJO_PRE = "_pre"
SUFIJO_POST = "_post"
CAMPO_NO_PUNTUADO = "minutos_sesion"

# punto medio de la escala 0-10
PROMEDIO_POR_DEFECTO = 5.0


class TipoEvaluacion(str, enum.Enum):
    PRE = "pre"
    POST = "post"


class Respuesta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_id: str = Field(alias="questionId", min_length=1)
    # NaN / infinito invalidan el registro entero
    value: int | FiniteFloat


_lista_respuestas = TypeAdapter(list[Respuesta])


@dataclass(frozen=True)
class Pregunta:
    id: str
    texto: str
    descripcion: str
    minimo: int = 0
    maximo: int = 10
    defecto: int = 5


PREGUNTAS_PRE: tuple[Pregunta, ...] = (
    Pregunta("stress_pre", "¿Cuán estresado estás hoy?", "0 = Sin estrés, 10 = Extremadamente estresado"),
    Pregunta("sueno_pre", "¿Cómo dormiste anoche?", "0 = Muy mal, 10 = Excelente"),
    Pregunta("fatiga_pre", "¿Qué tan fatigado estás hoy?", "0 = Sin fatiga, 10 = Extremadamente fatigado"),
    Pregunta("dolor_muscular_pre", "¿Cuánto te duelen los músculos?", "0 = Sin dolor, 10 = Dolor extremo"),
)

PREGUNTAS_POST: tuple[Pregunta, ...] = (
    Pregunta(
        "percepcion_esfuerzo_post",
        "¿Qué tan intensa sentiste la sesión de hoy?",
        "0 = Muy suave, 10 = Extremadamente intensa",
    ),
    Pregunta("eva_post", "¿Con cuánto dolor terminaste?", "0 = Sin dolor, 10 = Dolor extremo"),
    Pregunta(
        "minutos_sesion_post",
        "Minutos de sesión:",
        "Ingresa la duración de la sesión en minutos",
        minimo=0,
        maximo=300,
        defecto=0,
    ),
)


def preguntas_de(tipo: TipoEvaluacion | str) -> tuple[Pregunta, ...]:
    return PREGUNTAS_PRE if TipoEvaluacion(tipo) is TipoEvaluacion.PRE else PREGUNTAS_POST


# =========================
# Helpers numéricos
# =========================
def redondear(valor: float) -> float:
    """Un decimal, mitades hacia arriba (7.25 -> 7.3)."""
    if not math.isfinite(valor):
        return valor
    # el contexto por defecto (28 dígitos) no alcanza para cuantizar floats grandes
    with localcontext() as ctx:
        ctx.prec = 400
        return float(Decimal(repr(valor)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def es_puntuable(question_id: str) -> bool:
    return CAMPO_NO_PUNTUADO not in question_id


def categoria_de(question_id: str) -> str:
    return question_id.removesuffix(SUFIJO_PRE).removesuffix(SUFIJO_POST)


def promedio_grupo(respuestas: Iterable[Respuesta]) -> float:
    valores = [r.value for r in respuestas if es_puntuable(r.question_id)]
    if not valores:
        return PROMEDIO_POR_DEFECTO
    return redondear(sum(valores) / len(valores))


# =========================
# Parseo / serialización
# =========================
def parsear_respuestas(payload: Any) -> list[Respuesta] | None:
    """
    Acepta el JSON guardado (str) o una lista ya decodificada.
    Devuelve None si falta, no es JSON, no tiene la forma esperada o está vacío.
    """
    if payload is None:
        return None

    if isinstance(payload, (bytes, str)):
        texto = payload.decode("utf-8", errors="replace") if isinstance(payload, bytes) else payload
        texto = texto.strip()
        if not texto:
            return None
        if not texto.startswith(("[", "{")):
            logger.warning("Respuestas de evaluación no son JSON: %.40r", texto)
            return None
        try:
            payload = json.loads(texto)
        except json.JSONDecodeError as e:
            logger.warning("Respuestas de evaluación ilegibles: %s", e)
            return None

    try:
        respuestas = _lista_respuestas.validate_python(payload)
    except ValidationError as e:
        logger.warning("Respuestas de evaluación con forma inesperada: %s", e.error_count())
        return None

    return respuestas or None


def serializar_respuestas(respuestas: Iterable[Respuesta]) -> str:
    return json.dumps([r.model_dump(by_alias=True) for r in respuestas], ensure_ascii=False)


def _payload_de(evaluacion: Any) -> Any:
    """Registro (ORM o dict) -> respuestas_comprimidas; cualquier otra cosa se toma como payload."""
    if isinstance(evaluacion, dict):
        return evaluacion.get("respuestas_comprimidas", evaluacion.get("respuestas"))
    return getattr(evaluacion, "respuestas_comprimidas", evaluacion)


# =========================
# Escritura (formulario)
# =========================
def validar_respuestas(tipo: TipoEvaluacion | str, respuestas: Iterable[Respuesta | dict]) -> list[Respuesta]:
    """Solo preguntas del cuestionario de esa mitad, cada una dentro de su rango."""
    catalogo = {p.id: p for p in preguntas_de(tipo)}
    out = []
    for r in respuestas:
        r = r if isinstance(r, Respuesta) else Respuesta.model_validate(r)
        p = catalogo.get(r.question_id)
        if p is None:
            raise ValueError(f"Pregunta desconocida para la {TipoEvaluacion(tipo).value}-evaluación: '{r.question_id}'.")
        if not p.minimo <= r.value <= p.maximo:
            raise ValueError(f"Valor fuera de rango para '{p.id}': {r.value} (rango {p.minimo}-{p.maximo}).")
        out.append(r)
    return out


def completar_respuestas(tipo: TipoEvaluacion | str, respuestas: Iterable[Respuesta | dict]) -> list[Respuesta]:
    """
    Una respuesta por pregunta del cuestionario, en su orden.
    Las no contestadas toman el valor por defecto (5, o 0 para los minutos).
    """
    dadas: dict[str, Respuesta] = {}
    for r in respuestas:
        r = r if isinstance(r, Respuesta) else Respuesta.model_validate(r)
        dadas[r.question_id] = r

    out = []
    for p in preguntas_de(tipo):
        r = dadas.get(p.id)
        if r is None:
            out.append(Respuesta(question_id=p.id, value=p.defecto))
            continue
        if not p.minimo <= r.value <= p.maximo:
            raise ValueError(f"Valor fuera de rango para '{p.id}': {r.value} (rango {p.minimo}-{p.maximo}).")
        out.append(r)
    return out


def fusionar_respuestas(existentes: Iterable[Respuesta], nuevas: Iterable[Respuesta]) -> list[Respuesta]:
    """Upsert por questionId: las nuevas pisan a las existentes, el resto se conserva."""
    fusion = {r.question_id: r for r in existentes}
    for r in nuevas:
        fusion[r.question_id] = r
    return list(fusion.values())


def calcular_promedios(respuestas: Iterable[Respuesta]) -> dict[str, float]:
    """Promedio por categoría (questionId sin sufijo), sin los minutos de sesión."""
    por_categoria: dict[str, list[float]] = {}
    for r in respuestas:
        if not es_puntuable(r.question_id):
            continue
        por_categoria.setdefault(categoria_de(r.question_id), []).append(r.value)
    return {cat: redondear(sum(v) / len(v)) for cat, v in por_categoria.items()}


def tiene_mitad(respuestas: Iterable[Respuesta], tipo: TipoEvaluacion | str) -> bool:
    sufijo = SUFIJO_PRE if TipoEvaluacion(tipo) is TipoEvaluacion.PRE else SUFIJO_POST
    return any(sufijo in r.question_id for r in respuestas)


def tipo_evaluacion(respuestas: Iterable[Respuesta]) -> str:
    return "Pre-sesión" if tiene_mitad(respuestas, TipoEvaluacion.PRE) else "Post-sesión"


# =========================
# Estado de la última sesión
# =========================
@dataclass(frozen=True)
class EstadoEvaluacion:
    pre_completada: bool = False
    post_completada: bool = False
    puede_hacer_post: bool = False
    promedio_pre: float | None = None
    promedio_post: float | None = None
    promedio_general: float | None = None
    ultima_sesion: dict | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def resolver_estado(evaluaciones: Iterable[Any], ultima_sesion: dict | None = None) -> EstadoEvaluacion:
    """
    Estado pre/post de una sesión a partir de sus evaluaciones.

    Lo normal es un solo registro por sesión; si hay varios, sus respuestas
    se fusionan en orden por questionId. Los registros ilegibles se ignoran.
    Nunca levanta: sin sesión o sin evaluaciones devuelve "nada completado".
    """
    pre: dict[str, Respuesta] = {}
    post: dict[str, Respuesta] = {}

    for ev in evaluaciones:
        respuestas = parsear_respuestas(_payload_de(ev))
        if respuestas is None:
            continue
        for r in respuestas:
            if SUFIJO_PRE in r.question_id:
                pre[r.question_id] = r
            if SUFIJO_POST in r.question_id:
                post[r.question_id] = r

    pre_completada = bool(pre)
    post_completada = bool(post)
    promedio_pre = promedio_grupo(pre.values()) if pre_completada else None
    promedio_post = promedio_grupo(post.values()) if post_completada else None

    if promedio_pre is not None and promedio_post is not None:
        promedio_general = redondear((promedio_pre + promedio_post) / 2)
    else:
        promedio_general = promedio_pre if promedio_pre is not None else promedio_post

    return EstadoEvaluacion(
        pre_completada=pre_completada,
        post_completada=post_completada,
        puede_hacer_post=pre_completada and not post_completada,
        promedio_pre=promedio_pre,
        promedio_post=promedio_post,
        promedio_general=promedio_general,
        ultima_sesion=ultima_sesion,
    )
