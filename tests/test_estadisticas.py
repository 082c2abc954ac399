from __future__ import annotations

from datetime import date, datetime

import pytest

from consultorio.estadisticas import (
    FiltroTiempo,
    estadisticas_por_hora,
    estadisticas_por_periodo,
    generar_buckets,
    get_week_start,
    hora_display,
)

# lunes
AHORA = datetime(2026, 10, 19, 10, 0)


def _ses(fecha: str, hora: str = "10:00") -> dict:
    return {"fecha": fecha, "hora": hora}


def _cantidades(stats) -> dict[str, int]:
    return {d.periodo: d.cantidad for d in stats.datos}


# =========================
# Por hora
# =========================
def test_una_sesion_por_cada_hora_de_la_franja():
    sesiones = [_ses("05-10-2026", f"{h:02d}:30") for h in range(7, 21)]

    stats = estadisticas_por_hora(sesiones)

    assert [d.hora for d in stats.datos] == [f"{h:02d}:00" for h in range(7, 21)]
    assert all(d.cantidad == 1 for d in stats.datos)
    assert stats.total_sesiones == 14


@pytest.mark.parametrize(
    ("hora", "esperado"),
    [(7, "7 AM"), (11, "11 AM"), (12, "12 PM"), (13, "1 PM"), (20, "8 PM")],
)
def test_hora_display(hora, esperado):
    assert hora_display(hora) == esperado


def test_horas_fuera_de_franja_cuentan_en_el_total_pero_no_en_las_barras():
    sesiones = [_ses("05-10-2026", "06:10"), _ses("05-10-2026", "21:00"), _ses("05-10-2026", "09:00")]

    stats = estadisticas_por_hora(sesiones)

    assert stats.total_sesiones == 3
    assert sum(d.cantidad for d in stats.datos) == 1
    assert next(d for d in stats.datos if d.hora == "09:00").cantidad == 1


def test_hora_ilegible_se_descarta_de_las_barras():
    stats = estadisticas_por_hora([_ses("05-10-2026", "xx"), _ses("05-10-2026", "")])

    assert stats.total_sesiones == 2
    assert sum(d.cantidad for d in stats.datos) == 0
    assert stats.hora_pico is None


def test_filtro_por_fecha():
    sesiones = [
        _ses("05-10-2026", "08:00"),
        _ses("05-10-2026", "08:45"),
        _ses("06-10-2026", "08:00"),
        _ses("06-10-2026", "18:00"),
    ]

    stats = estadisticas_por_hora(sesiones, fecha="05-10-2026")

    assert stats.total_sesiones == 2
    assert next(d for d in stats.datos if d.hora == "08:00").cantidad == 2
    assert stats.hora_pico == "8 AM"


def test_acepta_objetos_con_atributos():
    class Sesion:
        fecha = "05-10-2026"
        hora = "17:15"

    stats = estadisticas_por_hora([Sesion()])

    assert next(d for d in stats.datos if d.hora == "17:00").cantidad == 1


def test_as_dict_por_hora():
    d = estadisticas_por_hora([_ses("05-10-2026", "12:00")]).as_dict()

    assert d["total_sesiones"] == 1
    assert d["hora_pico"] == "12 PM"
    assert d["datos"][0] == {"hora": "07:00", "cantidad": 0, "hora_display": "7 AM"}


# =========================
# Por período
# =========================
def test_get_week_start():
    assert get_week_start(date(2026, 10, 19)) == date(2026, 10, 19)
    assert get_week_start(date(2026, 10, 25)) == date(2026, 10, 19)
    assert get_week_start(date(2026, 10, 1)) == date(2026, 9, 28)


def test_semanal():
    sesiones = [_ses("12-10-2026"), _ses("13-10-2026"), _ses("19-10-2026"), _ses("19-10-2026")]

    stats = estadisticas_por_periodo(sesiones, FiltroTiempo.SEMANAL, ahora=AHORA)

    etiquetas = [d.periodo for d in stats.datos]
    assert etiquetas[0] == "Mar 13/10"
    assert etiquetas[-1] == "Lun 19/10"
    assert len(etiquetas) == 7
    assert _cantidades(stats)["Mar 13/10"] == 1
    assert _cantidades(stats)["Lun 19/10"] == 2
    assert stats.total_sesiones == 3


def test_mensual_semanas_desde_el_lunes():
    sesiones = [_ses("27-09-2026"), _ses("28-09-2026"), _ses("04-10-2026"), _ses("05-10-2026"), _ses("25-10-2026")]

    stats = estadisticas_por_periodo(sesiones, "mensual", ahora=AHORA)

    assert [d.periodo for d in stats.datos] == ["28 Sep-4 Oct", "5-11 Oct", "12-18 Oct", "19-25 Oct"]
    assert [d.cantidad for d in stats.datos] == [2, 1, 0, 1]
    assert stats.total_sesiones == 4


def test_trimestral():
    sesiones = [_ses("31-12-2025"), _ses("01-01-2026"), _ses("15-05-2026"), _ses("30-09-2026"), _ses("01-10-2026")]

    stats = estadisticas_por_periodo(sesiones, FiltroTiempo.TRIMESTRAL, ahora=AHORA)

    assert _cantidades(stats) == {
        "1er Trimestre 2026": 1,
        "2do Trimestre 2026": 1,
        "3er Trimestre 2026": 1,
        "4to Trimestre 2026": 1,
    }
    assert stats.total_sesiones == 4


def test_trimestral_cruza_de_anio():
    buckets = generar_buckets(FiltroTiempo.TRIMESTRAL, datetime(2026, 2, 10))

    assert [b.etiqueta for b in buckets] == [
        "2do Trimestre 2025",
        "3er Trimestre 2025",
        "4to Trimestre 2025",
        "1er Trimestre 2026",
    ]
    assert buckets[0].inicio == date(2025, 4, 1)
    assert buckets[-1].fin == date(2026, 4, 1)


def test_semestral():
    sesiones = [_ses("31-12-2024"), _ses("10-03-2025"), _ses("10-08-2025"), _ses("30-06-2026"), _ses("01-07-2026")]

    stats = estadisticas_por_periodo(sesiones, FiltroTiempo.SEMESTRAL, ahora=AHORA)

    assert [d.periodo for d in stats.datos] == [
        "1er Semestre 2025",
        "2do Semestre 2025",
        "1er Semestre 2026",
        "2do Semestre 2026",
    ]
    assert [d.cantidad for d in stats.datos] == [1, 1, 1, 1]


def test_anual():
    sesiones = [_ses("31-12-2023"), _ses("01-01-2024"), _ses("15-06-2025"), _ses("19-10-2026")]

    stats = estadisticas_por_periodo(sesiones, FiltroTiempo.ANUAL, ahora=AHORA)

    assert _cantidades(stats) == {"2024": 1, "2025": 1, "2026": 1}
    assert stats.total_sesiones == 3


@pytest.mark.parametrize("filtro", list(FiltroTiempo))
def test_buckets_contiguos_y_sin_solapamiento(filtro):
    buckets = generar_buckets(filtro, AHORA)

    for anterior, siguiente in zip(buckets, buckets[1:]):
        assert anterior.fin == siguiente.inicio
    assert buckets[0].inicio <= AHORA.date() < buckets[-1].fin


@pytest.mark.parametrize("filtro", list(FiltroTiempo))
def test_total_es_la_suma_de_las_barras(filtro):
    sesiones = [_ses(f"{d:02d}-{m:02d}-{a}") for a in (2024, 2025, 2026) for m in range(1, 13) for d in (1, 15, 28)]
    sesiones.append(_ses("no-es-fecha"))

    stats = estadisticas_por_periodo(sesiones, filtro, ahora=AHORA)

    assert stats.total_sesiones == sum(d.cantidad for d in stats.datos)


def test_sin_sesiones():
    stats = estadisticas_por_periodo([], FiltroTiempo.MENSUAL, ahora=AHORA)

    assert stats.total_sesiones == 0
    assert len(stats.datos) == 4
    assert stats.as_dict()["filtro"] == "mensual"


def test_filtro_invalido():
    with pytest.raises(ValueError):
        estadisticas_por_periodo([], "quincenal", ahora=AHORA)
