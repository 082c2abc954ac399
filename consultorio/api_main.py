from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Response, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel, ConfigDict, Field

from .auth_models import Usuario
from .auth_security import create_access_token, get_subject
from .auth_service import autenticar, get_usuario_by_id
from .estadisticas import FiltroTiempo
from .evaluaciones import Respuesta, TipoEvaluacion, preguntas_de
from .exportar import exportar_sesiones_excel, nombre_archivo
from .logging_config import setup_logging
from .models import Sentimiento, TipoPaciente
from .seed import seed_base
from .services import (
    Esito,
    actualizar_categoria,
    actualizar_obra_social,
    actualizar_paciente,
    actualizar_sesion,
    buscar_pacientes,
    crear_categoria,
    crear_obra_social,
    crear_paciente,
    crear_sesion,
    eliminar_categoria,
    eliminar_obra_social,
    eliminar_paciente,
    eliminar_sesion,
    estadisticas_horarias,
    estadisticas_periodicas,
    estado_evaluacion,
    evaluaciones_por_sesion,
    guardar_evaluacion,
    historial_evaluaciones,
    init_db,
    lista_categorias,
    lista_obras_sociales,
    lista_pacientes,
    lista_sesiones,
    obtener_paciente,
)

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

app = FastAPI(title="Consultorio Kinesiología API", version="1.0.0")



# Startup

@app.on_event("startup")
def startup() -> None:
    # Logging, tablas (incluida usuarios) y seed base (idempotente)
    setup_logging()
    init_db()
    seed_base()



# Esquemas Auth

class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: str
    username: str
    is_active: bool



# Esquemas dominio

class PacienteIn(BaseModel):
    nombre_paciente: str = Field(..., min_length=1)
    sesiones_totales: int = Field(..., ge=1)
    tipo_paciente: TipoPaciente = TipoPaciente.PARTICULAR
    obra_social_id: str | None = None
    categoria_id: str | None = None
    nota_lesion: str | None = None
    nombre_kinesiologo: str | None = None


class SesionCreateIn(BaseModel):
    sentimiento: Sentimiento


class SesionUpdateIn(BaseModel):
    fecha: str
    hora: str
    sentimiento: Sentimiento


class EvaluacionIn(BaseModel):
    tipo: TipoEvaluacion
    respuestas: list[Respuesta] = []


class CatalogoIn(BaseModel):
    nombre: str = Field(..., min_length=1)
    descripcion: str | None = None


class ExportIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    fecha_desde: str | None = Field(None, alias="startDate")
    fecha_hasta: str | None = Field(None, alias="endDate")



# Dependencias auth / helpers

def get_current_user(token: str = Depends(oauth2_scheme)) -> Usuario:
    # el botón Authorize de /docs acepta el token pegado entre comillas
    user_id = get_subject(token.strip().strip("\"'"))
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido")

    u = get_usuario_by_id(user_id)
    if not u or not u.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuario inválido")
    return u


def _no_encontrado(que: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{que} no encontrado")


def _esito_out(esito: Esito) -> dict[str, Any]:
    return {"ok": esito.ok, "id": esito.id, "mensaje": esito.mensaje}



# AUTH endpoints

@app.post("/api/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    u = autenticar(form.username, form.password)
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenciales inválidas")

    token = create_access_token(u.id, u.username)
    return TokenOut(access_token=token)


@app.get("/api/me", response_model=MeOut)
def me(user: Usuario = Depends(get_current_user)) -> MeOut:
    return MeOut(id=user.id, username=user.username, is_active=user.is_active)



# Pacientes

@app.get("/api/pacientes")
def api_buscar_pacientes(
    desde: date | None = None,
    hasta: date | None = None,
    q: str | None = None,
    pagina: int = Query(1, ge=1),
    tamano: int = Query(9, ge=1, le=100),
    user: Usuario = Depends(get_current_user),
) -> dict[str, Any]:
    return buscar_pacientes(fecha_desde=desde, fecha_hasta=hasta, busqueda=q, pagina=pagina, tamano_pagina=tamano)


@app.get("/api/pacientes/con-sesiones")
def api_pacientes_con_sesiones(
    desde: str | None = None,
    hasta: str | None = None,
    user: Usuario = Depends(get_current_user),
) -> list[dict]:
    try:
        return lista_pacientes(desde, hasta)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/pacientes")
def api_crear_paciente(payload: PacienteIn, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    try:
        pid = crear_paciente(**payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "paciente_id": pid, "mensaje": "Paciente creado con éxito."}


@app.get("/api/pacientes/{paciente_id}")
def api_paciente(paciente_id: str, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    p = obtener_paciente(paciente_id)
    if not p:
        raise _no_encontrado("Paciente")
    return p


@app.put("/api/pacientes/{paciente_id}")
def api_actualizar_paciente(
    paciente_id: str, payload: PacienteIn, user: Usuario = Depends(get_current_user)
) -> dict[str, Any]:
    try:
        ok = actualizar_paciente(paciente_id, **payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not ok:
        raise _no_encontrado("Paciente")
    return {"ok": True, "mensaje": "Paciente actualizado con éxito."}


@app.delete("/api/pacientes/{paciente_id}")
def api_eliminar_paciente(paciente_id: str, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    if not eliminar_paciente(paciente_id):
        raise _no_encontrado("Paciente")
    return {"ok": True, "mensaje": "Paciente eliminado con éxito."}



# Sesiones

@app.get("/api/pacientes/{paciente_id}/sesiones")
def api_sesiones(paciente_id: str, user: Usuario = Depends(get_current_user)) -> list[dict]:
    return lista_sesiones(paciente_id)


@app.post("/api/pacientes/{paciente_id}/sesiones")
def api_crear_sesion(
    paciente_id: str, payload: SesionCreateIn, user: Usuario = Depends(get_current_user)
) -> dict[str, Any]:
    sid = crear_sesion(paciente_id, payload.sentimiento)
    if not sid:
        raise _no_encontrado("Paciente")
    return {"ok": True, "sesion_id": sid, "mensaje": "Sesión creada con éxito."}


@app.put("/api/sesiones/{sesion_id}")
def api_actualizar_sesion(
    sesion_id: str, payload: SesionUpdateIn, user: Usuario = Depends(get_current_user)
) -> dict[str, Any]:
    try:
        ok = actualizar_sesion(sesion_id, payload.fecha, payload.hora, payload.sentimiento)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not ok:
        raise _no_encontrado("Sesión")
    return {"ok": True, "mensaje": "Sesión actualizada con éxito."}


@app.delete("/api/sesiones/{sesion_id}")
def api_eliminar_sesion(sesion_id: str, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    if not eliminar_sesion(sesion_id):
        raise _no_encontrado("Sesión")
    return {"ok": True, "mensaje": "Sesión eliminada con éxito."}



# Evaluaciones

@app.get("/api/evaluaciones/preguntas")
def api_preguntas(tipo: TipoEvaluacion = TipoEvaluacion.PRE, user: Usuario = Depends(get_current_user)) -> list[dict]:
    return [asdict(p) for p in preguntas_de(tipo)]


@app.get("/api/pacientes/{paciente_id}/evaluacion/estado")
def api_estado_evaluacion(paciente_id: str, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return estado_evaluacion(paciente_id).as_dict()


@app.post("/api/pacientes/{paciente_id}/evaluaciones")
def api_guardar_evaluacion(
    paciente_id: str, payload: EvaluacionIn, user: Usuario = Depends(get_current_user)
) -> dict[str, Any]:
    try:
        esito = guardar_evaluacion(paciente_id, payload.tipo, payload.respuestas)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if esito is None:
        raise _no_encontrado("Paciente")
    if not esito.ok:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=esito.mensaje)
    return _esito_out(esito)


@app.get("/api/pacientes/{paciente_id}/evaluaciones")
def api_historial_evaluaciones(paciente_id: str, user: Usuario = Depends(get_current_user)) -> list[dict]:
    return historial_evaluaciones(paciente_id)


@app.get("/api/sesiones/{sesion_id}/evaluaciones")
def api_evaluaciones_sesion(sesion_id: str, user: Usuario = Depends(get_current_user)) -> list[dict]:
    return evaluaciones_por_sesion(sesion_id)



# Administración: categorías y obras sociales

@app.get("/api/categorias")
def api_categorias(user: Usuario = Depends(get_current_user)) -> list[dict]:
    return lista_categorias()


@app.post("/api/categorias")
def api_crear_categoria(payload: CatalogoIn, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    try:
        cid = crear_categoria(payload.nombre, payload.descripcion)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "id": cid, "mensaje": "Categoría creada con éxito."}


@app.put("/api/categorias/{categoria_id}")
def api_actualizar_categoria(
    categoria_id: str, payload: CatalogoIn, user: Usuario = Depends(get_current_user)
) -> dict[str, Any]:
    try:
        ok = actualizar_categoria(categoria_id, payload.nombre, payload.descripcion)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not ok:
        raise _no_encontrado("Categoría")
    return {"ok": True, "mensaje": "Categoría actualizada con éxito."}


@app.delete("/api/categorias/{categoria_id}")
def api_eliminar_categoria(categoria_id: str, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    esito = eliminar_categoria(categoria_id)
    if esito is None:
        raise _no_encontrado("Categoría")
    if not esito.ok:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=esito.mensaje)
    return _esito_out(esito)


@app.get("/api/obras-sociales")
def api_obras_sociales(user: Usuario = Depends(get_current_user)) -> list[dict]:
    return lista_obras_sociales()


@app.post("/api/obras-sociales")
def api_crear_obra_social(payload: CatalogoIn, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    try:
        oid = crear_obra_social(payload.nombre, payload.descripcion)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "id": oid, "mensaje": "Obra social creada con éxito."}


@app.put("/api/obras-sociales/{obra_social_id}")
def api_actualizar_obra_social(
    obra_social_id: str, payload: CatalogoIn, user: Usuario = Depends(get_current_user)
) -> dict[str, Any]:
    try:
        ok = actualizar_obra_social(obra_social_id, payload.nombre, payload.descripcion)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not ok:
        raise _no_encontrado("Obra social")
    return {"ok": True, "mensaje": "Obra social actualizada con éxito."}


@app.delete("/api/obras-sociales/{obra_social_id}")
def api_eliminar_obra_social(obra_social_id: str, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    esito = eliminar_obra_social(obra_social_id)
    if esito is None:
        raise _no_encontrado("Obra social")
    if not esito.ok:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=esito.mensaje)
    return _esito_out(esito)



# Estadísticas

@app.get("/api/estadisticas/horas")
def api_estadisticas_horas(fecha: str | None = None, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return estadisticas_horarias(fecha).as_dict()


@app.get("/api/estadisticas/periodos")
def api_estadisticas_periodos(
    filtro: FiltroTiempo = FiltroTiempo.MENSUAL, user: Usuario = Depends(get_current_user)
) -> dict[str, Any]:
    return estadisticas_periodicas(filtro).as_dict()



# Exportación

@app.post("/api/export-sesiones")
def api_export_sesiones(payload: ExportIn, user: Usuario = Depends(get_current_user)) -> Response:
    if not payload.fecha_desde or not payload.fecha_hasta:
        raise HTTPException(status_code=400, detail="Se requieren fechas de inicio y fin")

    try:
        contenido = exportar_sesiones_excel(payload.fecha_desde, payload.fecha_hasta)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return Response(
        content=contenido,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{nombre_archivo(payload.fecha_desde, payload.fecha_hasta)}"'
        },
    )
