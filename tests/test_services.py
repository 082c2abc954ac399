from __future__ import annotations

from datetime import date, datetime

import pytest

from consultorio import services
from consultorio.models import Sentimiento, TipoPaciente, utcnow
from consultorio.seed import seed_base

PRE = [
    {"questionId": "stress_pre", "value": 8},
    {"questionId": "sueno_pre", "value": 6},
    {"questionId": "fatiga_pre", "value": 7},
    {"questionId": "dolor_muscular_pre", "value": 7},
]
POST = [
    {"questionId": "percepcion_esfuerzo_post", "value": 4},
    {"questionId": "eva_post", "value": 2},
    {"questionId": "minutos_sesion_post", "value": 45},
]


@pytest.fixture
def paciente_id() -> str:
    return services.crear_paciente("Ana Gómez", 10, nombre_kinesiologo="Lic. Paz")


def _sesion(paciente_id: str, cuando: datetime, sentimiento=Sentimiento.VERDE) -> str:
    return services.crear_sesion(paciente_id, sentimiento, ahora=cuando)


# =========================
# Pacientes
# =========================
def test_crear_y_obtener_paciente(paciente_id):
    _sesion(paciente_id, datetime(2026, 10, 5, 9, 0))
    _sesion(paciente_id, datetime(2026, 10, 6, 9, 0))

    p = services.obtener_paciente(paciente_id)

    assert p["nombre_paciente"] == "Ana Gómez"
    assert p["tipo_paciente"] == "particular"
    assert p["sesiones_completadas"] == 2
    assert p["progreso"] == 20.0


def test_paciente_obra_social_requiere_obra_social():
    with pytest.raises(ValueError):
        services.crear_paciente("Juan", 5, tipo_paciente=TipoPaciente.OBRA_SOCIAL)


def test_paciente_particular_limpia_obra_social():
    oid = services.crear_obra_social("OSDE")
    pid = services.crear_paciente("Juan", 5, tipo_paciente="obra_social", obra_social_id=oid)
    assert services.obtener_paciente(pid)["obra_social"] == "OSDE"

    services.actualizar_paciente(pid, "Juan", 5, tipo_paciente="particular", obra_social_id=oid)

    assert services.obtener_paciente(pid)["obra_social_id"] is None


def test_created_at_en_utc_sin_tzinfo(paciente_id):
    antes = utcnow()
    p = services.obtener_paciente(paciente_id)

    creado = datetime.fromisoformat(p["created_at"])
    assert creado.tzinfo is None
    assert abs((creado - antes).total_seconds()) < 60


def test_sesiones_totales_invalidas():
    with pytest.raises(ValueError):
        services.crear_paciente("Juan", 0)


def test_eliminar_paciente_borra_sesiones_y_evaluaciones(paciente_id):
    sid = _sesion(paciente_id, datetime(2026, 10, 5, 9, 0))
    services.guardar_evaluacion(paciente_id, "pre", PRE)

    assert services.eliminar_paciente(paciente_id) is True

    assert services.obtener_paciente(paciente_id) is None
    assert services.lista_sesiones(paciente_id) == []
    assert services.evaluaciones_por_sesion(sid) == []
    assert services.eliminar_paciente(paciente_id) is False


def test_buscar_pacientes_paginado():
    for i in range(12):
        services.crear_paciente(f"Paciente {i:02d}", 5, nombre_kinesiologo="Lic. Acosta" if i % 2 else None)

    pagina = services.buscar_pacientes(pagina=2, tamano_pagina=9)
    assert pagina["total"] == 12
    assert pagina["total_paginas"] == 2
    assert len(pagina["pacientes"]) == 3

    por_kine = services.buscar_pacientes(busqueda="acosta")
    assert por_kine["total"] == 6

    por_nombre = services.buscar_pacientes(busqueda="PACIENTE 03")
    assert [p["nombre_paciente"] for p in por_nombre["pacientes"]] == ["Paciente 03"]


def test_lista_pacientes_con_sesiones_en_rango(paciente_id):
    otro = services.crear_paciente("Otro", 3)
    _sesion(paciente_id, datetime(2026, 10, 5, 9, 0))
    _sesion(otro, datetime(2026, 9, 1, 9, 0))

    en_rango = services.lista_pacientes("01-10-2026", "31-10-2026")

    assert [p["id"] for p in en_rango] == [paciente_id]
    assert len(services.lista_pacientes()) == 2


# =========================
# Sesiones
# =========================
def test_crear_sesion_paciente_inexistente():
    assert services.crear_sesion("no-existe", "verde") is None


def test_crear_sesion_sentimiento_invalido(paciente_id):
    with pytest.raises(ValueError):
        services.crear_sesion(paciente_id, "violeta")


def test_ultima_sesion_por_fecha_y_hora(paciente_id):
    _sesion(paciente_id, datetime(2026, 10, 6, 8, 0))
    _sesion(paciente_id, datetime(2026, 9, 30, 19, 0))
    _sesion(paciente_id, datetime(2026, 10, 6, 17, 30), Sentimiento.ROJO)

    ultima = services.ultima_sesion(paciente_id)

    assert (ultima["fecha"], ultima["hora"], ultima["sentimiento"]) == ("06-10-2026", "17:30", "rojo")
    assert [s["hora"] for s in services.lista_sesiones(paciente_id)] == ["17:30", "08:00", "19:00"]


def test_actualizar_sesion_valida_formatos(paciente_id):
    sid = _sesion(paciente_id, datetime(2026, 10, 6, 8, 0))

    with pytest.raises(ValueError):
        services.actualizar_sesion(sid, "2026-10-06", "08:00", "verde")
    with pytest.raises(ValueError):
        services.actualizar_sesion(sid, "06-10-2026", "8h", "verde")

    assert services.actualizar_sesion(sid, "07-10-2026", "09:15", "amarillo") is True
    assert services.lista_sesiones(paciente_id)[0]["fecha"] == "07-10-2026"
    assert services.actualizar_sesion("no-existe", "07-10-2026", "09:15", "verde") is False


def test_sesiones_por_rango(paciente_id):
    otro = services.crear_paciente("Beto", 4)
    _sesion(paciente_id, datetime(2026, 10, 5, 18, 0))
    _sesion(otro, datetime(2026, 10, 5, 9, 0), Sentimiento.AMARILLO)
    _sesion(paciente_id, datetime(2026, 10, 7, 10, 0))
    _sesion(paciente_id, datetime(2026, 10, 9, 10, 0))

    res = services.sesiones_por_rango("05-10-2026", "07-10-2026")

    assert res["total_sesiones"] == 3
    assert res["dias_con_sesiones"] == 2
    assert list(res["data"]) == ["05-10-2026", "07-10-2026"]
    assert [s["nombre_paciente"] for s in res["data"]["05-10-2026"]] == ["Beto", "Ana Gómez"]


def test_sesiones_por_rango_invertido():
    with pytest.raises(ValueError):
        services.sesiones_por_rango("10-10-2026", "01-10-2026")


# =========================
# Evaluaciones
# =========================
def test_guardar_evaluacion_sin_sesion(paciente_id):
    esito = services.guardar_evaluacion(paciente_id, "pre", PRE)

    assert esito.ok is False
    assert services.guardar_evaluacion("no-existe", "pre", PRE) is None


def test_pre_y_post_en_un_solo_registro(paciente_id):
    sid = _sesion(paciente_id, datetime(2026, 10, 5, 9, 0))
    cambios: list[str] = []

    pre = services.guardar_evaluacion(paciente_id, "pre", PRE, on_change=cambios.append, hoy=date(2026, 10, 5))
    estado = services.estado_evaluacion(paciente_id)
    assert pre.ok is True
    assert estado.pre_completada is True
    assert estado.puede_hacer_post is True
    assert estado.promedio_pre == 7.0

    post = services.guardar_evaluacion(paciente_id, "post", POST, on_change=cambios.append)
    estado = services.estado_evaluacion(paciente_id)
    assert post.id == pre.id
    assert estado.post_completada is True
    assert estado.puede_hacer_post is False
    assert estado.promedio_post == 3.0
    assert estado.promedio_general == 5.0
    assert estado.ultima_sesion["id"] == sid

    assert cambios == [paciente_id, paciente_id]
    registros = services.evaluaciones_por_sesion(sid)
    assert len(registros) == 1
    assert len(registros[0]["respuestas"]) == 7
    assert registros[0]["promedios"]["eva"] == 2.0
    assert "minutos_sesion" not in registros[0]["promedios"]


def test_repetir_pre_actualiza_las_respuestas(paciente_id):
    sid = _sesion(paciente_id, datetime(2026, 10, 5, 9, 0))
    services.guardar_evaluacion(paciente_id, "pre", PRE)

    esito = services.guardar_evaluacion(paciente_id, "pre", [{"questionId": "stress_pre", "value": 2}])

    assert esito.ok is True
    assert "Ya existía" in esito.mensaje
    valores = {r["questionId"]: r["value"] for r in services.evaluaciones_por_sesion(sid)[0]["respuestas"]}
    assert valores == {"stress_pre": 2, "sueno_pre": 6, "fatiga_pre": 7, "dolor_muscular_pre": 7}


def test_evaluacion_va_a_la_ultima_sesion(paciente_id):
    vieja = _sesion(paciente_id, datetime(2026, 10, 1, 9, 0))
    services.guardar_evaluacion(paciente_id, "pre", PRE)
    nueva = _sesion(paciente_id, datetime(2026, 10, 5, 9, 0))

    assert services.estado_evaluacion(paciente_id).pre_completada is False

    services.guardar_evaluacion(paciente_id, "pre", PRE)
    assert len(services.evaluaciones_por_sesion(vieja)) == 1
    assert len(services.evaluaciones_por_sesion(nueva)) == 1


def test_evaluacion_rechaza_preguntas_de_la_otra_mitad(paciente_id):
    sid = _sesion(paciente_id, datetime(2026, 10, 5, 9, 0))
    services.guardar_evaluacion(paciente_id, "pre", PRE)

    with pytest.raises(ValueError):
        services.guardar_evaluacion(paciente_id, "pre", [{"questionId": "eva_post", "value": 99}])
    with pytest.raises(ValueError):
        services.guardar_evaluacion(paciente_id, "post", [{"questionId": "extra_post", "value": 1e30}])

    estado = services.estado_evaluacion(paciente_id)
    assert estado.post_completada is False
    assert estado.puede_hacer_post is True
    assert estado.promedio_pre == 7.0
    assert len(services.evaluaciones_por_sesion(sid)[0]["respuestas"]) == 4


def test_historial_evaluaciones(paciente_id):
    _sesion(paciente_id, datetime(2026, 10, 5, 9, 0))
    services.guardar_evaluacion(paciente_id, "pre", PRE)

    historial = services.historial_evaluaciones(paciente_id)

    assert len(historial) == 1
    assert historial[0]["tipo"] == "Pre-sesión"
    assert historial[0]["tiene_post"] is False
    assert (historial[0]["sesion_fecha"], historial[0]["sesion_hora"]) == ("05-10-2026", "09:00")


def test_estado_sin_sesiones(paciente_id):
    estado = services.estado_evaluacion(paciente_id)

    assert estado.ultima_sesion is None
    assert estado.pre_completada is False


# =========================
# Categorías / obras sociales
# =========================
def test_seed_base_idempotente():
    seed_base()
    seed_base()

    assert len(services.lista_categorias()) == 4
    assert len(services.lista_obras_sociales()) == 4


def test_nombre_duplicado_sin_distinguir_mayusculas():
    services.crear_categoria("Deportiva")

    with pytest.raises(ValueError):
        services.crear_categoria("deportiva")


def test_no_se_elimina_categoria_con_pacientes():
    cid = services.crear_categoria("Neurológica")
    pid = services.crear_paciente("Carla", 8, categoria_id=cid)

    esito = services.eliminar_categoria(cid)
    assert esito.ok is False
    assert services.lista_categorias()[0]["cantidad_pacientes"] == 1

    services.eliminar_paciente(pid)
    assert services.eliminar_categoria(cid).ok is True
    assert services.eliminar_categoria(cid) is None


def test_actualizar_obra_social():
    oid = services.crear_obra_social("IOMA")

    assert services.actualizar_obra_social(oid, "IOMA Provincia", "Buenos Aires") is True
    assert services.lista_obras_sociales()[0]["nombre"] == "IOMA Provincia"
    assert services.actualizar_obra_social("no-existe", "X") is False


# =========================
# Estadísticas
# =========================
def test_estadisticas_desde_la_base(paciente_id):
    _sesion(paciente_id, datetime(2026, 10, 5, 9, 10))
    _sesion(paciente_id, datetime(2026, 10, 6, 9, 40))
    _sesion(paciente_id, datetime(2026, 10, 6, 22, 0))

    horas = services.estadisticas_horarias()
    assert horas.total_sesiones == 3
    assert horas.hora_pico == "9 AM"

    del_dia = services.estadisticas_horarias("06-10-2026")
    assert del_dia.total_sesiones == 2

    periodos = services.estadisticas_periodicas("anual", ahora=datetime(2026, 10, 19))
    assert periodos.as_dict()["datos"][-1] == {"periodo": "2026", "cantidad": 3}
