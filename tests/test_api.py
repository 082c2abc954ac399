from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from consultorio.api_main import app
from consultorio.auth_service import crear_usuario


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth(client) -> dict[str, str]:
    crear_usuario("Recepcion", "secreto123")
    r = client.post("/api/auth/login", data={"username": "recepcion", "password": "secreto123"})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def paciente_id(client, auth) -> str:
    r = client.post("/api/pacientes", json={"nombre_paciente": "Ana Gómez", "sesiones_totales": 10}, headers=auth)
    assert r.status_code == 200
    return r.json()["paciente_id"]


def test_rutas_protegidas_sin_token(client):
    assert client.get("/api/pacientes").status_code == 401
    assert client.get("/api/estadisticas/horas").status_code == 401
    assert client.get("/api/me", headers={"Authorization": "Bearer basura"}).status_code == 401


def test_login_credenciales_invalidas(client):
    crear_usuario("recepcion", "secreto123")

    r = client.post("/api/auth/login", data={"username": "recepcion", "password": "otra"})

    assert r.status_code == 401


def test_me(client, auth):
    r = client.get("/api/me", headers=auth)

    assert r.status_code == 200
    assert r.json()["username"] == "recepcion"


def test_crud_paciente(client, auth, paciente_id):
    r = client.get(f"/api/pacientes/{paciente_id}", headers=auth)
    assert r.json()["nombre_paciente"] == "Ana Gómez"

    r = client.put(
        f"/api/pacientes/{paciente_id}",
        json={"nombre_paciente": "Ana G.", "sesiones_totales": 12},
        headers=auth,
    )
    assert r.status_code == 200

    listado = client.get("/api/pacientes", params={"q": "ana"}, headers=auth).json()
    assert listado["total"] == 1
    assert listado["pacientes"][0]["sesiones_totales"] == 12

    assert client.delete(f"/api/pacientes/{paciente_id}", headers=auth).status_code == 200
    assert client.get(f"/api/pacientes/{paciente_id}", headers=auth).status_code == 404


def test_paciente_invalido(client, auth):
    r = client.post(
        "/api/pacientes",
        json={"nombre_paciente": "Juan", "sesiones_totales": 5, "tipo_paciente": "obra_social"},
        headers=auth,
    )

    assert r.status_code == 400


def test_flujo_sesion_y_evaluacion(client, auth, paciente_id):
    r = client.get(f"/api/pacientes/{paciente_id}/evaluacion/estado", headers=auth)
    assert r.json()["ultima_sesion"] is None

    r = client.post(
        f"/api/pacientes/{paciente_id}/evaluaciones",
        json={"tipo": "pre", "respuestas": [{"questionId": "stress_pre", "value": 8}]},
        headers=auth,
    )
    assert r.status_code == 409

    r = client.post(f"/api/pacientes/{paciente_id}/sesiones", json={"sentimiento": "verde"}, headers=auth)
    assert r.status_code == 200
    sesion_id = r.json()["sesion_id"]

    preguntas = client.get("/api/evaluaciones/preguntas", params={"tipo": "pre"}, headers=auth).json()
    respuestas = [{"questionId": p["id"], "value": 6} for p in preguntas]
    r = client.post(
        f"/api/pacientes/{paciente_id}/evaluaciones", json={"tipo": "pre", "respuestas": respuestas}, headers=auth
    )
    assert r.status_code == 200
    assert r.json()["ok"] is True

    estado = client.get(f"/api/pacientes/{paciente_id}/evaluacion/estado", headers=auth).json()
    assert estado["pre_completada"] is True
    assert estado["puede_hacer_post"] is True
    assert estado["promedio_pre"] == 6.0
    assert estado["ultima_sesion"]["id"] == sesion_id

    historial = client.get(f"/api/pacientes/{paciente_id}/evaluaciones", headers=auth).json()
    assert historial[0]["tipo"] == "Pre-sesión"
    assert len(client.get(f"/api/sesiones/{sesion_id}/evaluaciones", headers=auth).json()) == 1


def test_evaluacion_fuera_de_rango(client, auth, paciente_id):
    client.post(f"/api/pacientes/{paciente_id}/sesiones", json={"sentimiento": "rojo"}, headers=auth)

    r = client.post(
        f"/api/pacientes/{paciente_id}/evaluaciones",
        json={"tipo": "post", "respuestas": [{"questionId": "minutos_sesion_post", "value": 500}]},
        headers=auth,
    )

    assert r.status_code == 400


def test_evaluacion_con_pregunta_ajena(client, auth, paciente_id):
    client.post(f"/api/pacientes/{paciente_id}/sesiones", json={"sentimiento": "verde"}, headers=auth)

    r = client.post(
        f"/api/pacientes/{paciente_id}/evaluaciones",
        json={"tipo": "pre", "respuestas": [{"questionId": "eva_post", "value": 99}]},
        headers=auth,
    )
    assert r.status_code == 400

    estado = client.get(f"/api/pacientes/{paciente_id}/evaluacion/estado", headers=auth).json()
    assert estado["post_completada"] is False
    assert estado["pre_completada"] is False


def test_actualizar_sesion(client, auth, paciente_id):
    sid = client.post(f"/api/pacientes/{paciente_id}/sesiones", json={"sentimiento": "verde"}, headers=auth).json()[
        "sesion_id"
    ]

    r = client.put(f"/api/sesiones/{sid}", json={"fecha": "05-10-2026", "hora": "25:00", "sentimiento": "verde"}, headers=auth)
    assert r.status_code == 400

    r = client.put(f"/api/sesiones/{sid}", json={"fecha": "05-10-2026", "hora": "10:30", "sentimiento": "rojo"}, headers=auth)
    assert r.status_code == 200

    horas = client.get("/api/estadisticas/horas", params={"fecha": "05-10-2026"}, headers=auth).json()
    assert horas["total_sesiones"] == 1
    assert horas["hora_pico"] == "10 AM"
    assert len(horas["datos"]) == 14

    assert client.delete(f"/api/sesiones/{sid}", headers=auth).status_code == 200
    assert client.delete(f"/api/sesiones/{sid}", headers=auth).status_code == 404


def test_estadisticas_periodos(client, auth):
    r = client.get("/api/estadisticas/periodos", params={"filtro": "trimestral"}, headers=auth)
    assert r.status_code == 200
    assert r.json()["filtro"] == "trimestral"
    assert len(r.json()["datos"]) == 4

    assert client.get("/api/estadisticas/periodos", params={"filtro": "quincenal"}, headers=auth).status_code == 422


def test_catalogos_con_seed(client, auth, paciente_id):
    categorias = client.get("/api/categorias", headers=auth).json()
    assert {c["nombre"] for c in categorias} >= {"Deportiva", "Traumatológica"}

    r = client.post("/api/categorias", json={"nombre": "deportiva"}, headers=auth)
    assert r.status_code == 400

    deportiva = next(c for c in categorias if c["nombre"] == "Deportiva")
    client.put(
        f"/api/pacientes/{paciente_id}",
        json={"nombre_paciente": "Ana Gómez", "sesiones_totales": 10, "categoria_id": deportiva["id"]},
        headers=auth,
    )
    assert client.delete(f"/api/categorias/{deportiva['id']}", headers=auth).status_code == 409

    r = client.post("/api/obras-sociales", json={"nombre": "Galeno"}, headers=auth)
    oid = r.json()["id"]
    assert client.delete(f"/api/obras-sociales/{oid}", headers=auth).json()["ok"] is True


def test_export_sesiones(client, auth, paciente_id):
    r = client.post("/api/export-sesiones", json={"startDate": "01-10-2026"}, headers=auth)
    assert r.status_code == 400

    r = client.post("/api/export-sesiones", json={"startDate": "10-10-2026", "endDate": "01-10-2026"}, headers=auth)
    assert r.status_code == 400

    r = client.post("/api/export-sesiones", json={"startDate": "01-10-2026", "endDate": "07-10-2026"}, headers=auth)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")
    assert "sesiones_01-10-2026_a_07-10-2026.xlsx" in r.headers["content-disposition"]
    assert r.content[:2] == b"PK"
