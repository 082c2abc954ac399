from __future__ import annotations

import base64
import json
from datetime import date, datetime, timedelta, timezone

import pandas as pd
import requests
import streamlit as st

from consultorio.config import settings

st.set_page_config(page_title="Consultorio Kinesiología", layout="wide")

API_BASE = settings.api_base

FORMATO_FECHA = "%d-%m-%Y"
COLOR_SENTIMIENTO = {"verde": "🟢", "amarillo": "🟡", "rojo": "🔴"}
FILTROS = {
    "semanal": "Semana",
    "mensual": "Mes",
    "trimestral": "Trimestre",
    "semestral": "Semestre",
    "anual": "Año",
}



# JWT helpers (solo para la UI, sin verificar firma)

def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def jwt_payload(token: str) -> dict:
    try:
        parts = token.split(".")
        if len(parts) != 3:
            return {}
        payload = json.loads(_b64url_decode(parts[1]).decode("utf-8"))
        return payload if isinstance(payload, dict) else {}
    except (ValueError, UnicodeDecodeError):
        return {}


def jwt_is_expired(token: str) -> bool:
    p = jwt_payload(token)
    exp = p.get("exp")
    try:
        exp_int = int(exp)
    except (TypeError, ValueError):
        return False

    now = int(datetime.now(tz=timezone.utc).timestamp())
    return now >= (exp_int - 5)


def jwt_username(token: str) -> str:
    p = jwt_payload(token)
    return str(p.get("username") or p.get("sub") or "usuario")



# HTTP client (con JWT)

def _headers(token: str | None, json_body: bool = False) -> dict:
    headers = {}
    if json_body:
        headers["Content-Type"] = "application/json"
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _check(r: requests.Response) -> None:
    if r.status_code == 401:
        raise PermissionError("401 Unauthorized (token inválido/vencido o backend reiniciado).")
    if r.status_code in (400, 404, 409):
        # mensaje del backend en "detail"
        try:
            detail = r.json().get("detail")
        except ValueError:
            detail = None
        raise ValueError(detail or f"Error {r.status_code}")
    r.raise_for_status()


def api_get(path: str, token: str | None = None, params: dict | None = None) -> dict | list:
    r = requests.get(f"{API_BASE}{path}", headers=_headers(token), params=params, timeout=10)
    _check(r)
    return r.json()


def api_post(path: str, payload: dict, token: str | None = None) -> dict:
    r = requests.post(f"{API_BASE}{path}", headers=_headers(token, True), json=payload, timeout=10)
    _check(r)
    return r.json()


def api_put(path: str, payload: dict, token: str | None = None) -> dict:
    r = requests.put(f"{API_BASE}{path}", headers=_headers(token, True), json=payload, timeout=10)
    _check(r)
    return r.json()


def api_delete(path: str, token: str | None = None) -> dict:
    r = requests.delete(f"{API_BASE}{path}", headers=_headers(token), timeout=10)
    _check(r)
    return r.json()


def api_post_bytes(path: str, payload: dict, token: str | None = None) -> bytes:
    r = requests.post(f"{API_BASE}{path}", headers=_headers(token, True), json=payload, timeout=60)
    _check(r)
    return r.content


def api_login(username: str, password: str) -> str:
    # OAuth2PasswordRequestForm => x-www-form-urlencoded
    r = requests.post(
        f"{API_BASE}/api/auth/login",
        data={"username": username, "password": password},
        timeout=10,
    )
    r.raise_for_status()
    return r.json()["access_token"]


def is_logged_in() -> bool:
    token = st.session_state.get("token")
    return bool(token) and isinstance(token, str) and len(token) > 0


def do_logout() -> None:
    st.session_state.pop("token", None)
    st.session_state.pop("auth_error", None)
    st.cache_data.clear()
    st.rerun()


def require_auth() -> str | None:
    token = st.session_state.get("token")
    if not token:
        st.warning("Sección reservada. Iniciá sesión desde la barra lateral.")
        return None

    if jwt_is_expired(token):
        st.error("Sesión vencida. Hacé Logout desde la barra lateral y volvé a ingresar.")
        return None

    return token


def sesion_invalida(e: PermissionError) -> None:
    st.session_state["auth_error"] = str(e)
    st.error("Sesión inválida. Presioná Logout y volvé a ingresar.")



# Sidebar login

with st.sidebar:
    st.header("Acceso")

    token = st.session_state.get("token")

    if not is_logged_in():
        u = st.text_input("Usuario", key="login_user")
        p = st.text_input("Contraseña", type="password", key="login_pass")

        if st.button("Login", key="login_btn"):
            try:
                new_token = api_login(u.strip().lower(), p)
                st.session_state["token"] = new_token
                st.session_state.pop("auth_error", None)
                st.success("Sesión iniciada.")
                st.rerun()
            except requests.HTTPError:
                st.error("Credenciales inválidas.")
            except requests.RequestException as e:
                st.error(str(e))
    else:
        # Info del token sin llamar a /api/me
        user = jwt_username(token)
        st.write(f"Usuario: **{user}**")

        if st.session_state.get("auth_error"):
            st.error(st.session_state["auth_error"])

        if st.button("Logout", key="logout_btn"):
            do_logout()

    st.divider()
    st.caption(f"API: {API_BASE}")



# Datos con cache

@st.cache_data(ttl=30)
def load_categorias(token: str) -> list[dict]:
    return api_get("/api/categorias", token=token)


@st.cache_data(ttl=30)
def load_obras_sociales(token: str) -> list[dict]:
    return api_get("/api/obras-sociales", token=token)


@st.cache_data(ttl=300)
def load_preguntas(token: str, tipo: str) -> list[dict]:
    return api_get("/api/evaluaciones/preguntas", token=token, params={"tipo": tipo})


@st.cache_data(ttl=10)
def load_estado(token: str, paciente_id: str) -> dict:
    return api_get(f"/api/pacientes/{paciente_id}/evaluacion/estado", token=token)


def refrescar_estado() -> None:
    """Callback tras guardar una evaluación: invalida el estado y redibuja."""
    load_estado.clear()
    st.rerun()


def elegir_paciente(token: str, key: str) -> dict | None:
    busqueda = st.text_input("Buscar paciente o kinesiólogo", key=f"{key}_q")
    res = api_get("/api/pacientes", token=token, params={"q": busqueda or None, "tamano": 100})
    pacientes = res["pacientes"]
    if not pacientes:
        st.info("No hay pacientes para mostrar.")
        return None
    return st.selectbox(
        "Paciente",
        options=pacientes,
        format_func=lambda p: f"{p['nombre_paciente']} ({p['sesiones_completadas']}/{p['sesiones_totales']})",
        key=f"{key}_sel",
    )



# UI

st.title("Consultorio de Kinesiología")

tab1, tab2, tab3, tab4, tab5 = st.tabs(
    ["Pacientes", "Sesiones y evaluación", "Estadísticas", "Administración", "Exportar"]
)



# TAB 1 - Pacientes

with tab1:
    st.subheader("Pacientes")

    token = require_auth()
    if token:
        try:
            categorias = load_categorias(token)
            obras = load_obras_sociales(token)

            with st.expander("Nuevo paciente"):
                c1, c2 = st.columns(2)
                nombre = c1.text_input("Nombre del paciente", key="pac_nombre")
                kine = c2.text_input("Kinesiólogo (opcional)", key="pac_kine")
                sesiones_totales = c1.number_input("Sesiones totales", min_value=1, value=10, key="pac_total")
                tipo = c2.radio("Tipo", ["particular", "obra_social"], horizontal=True, key="pac_tipo")
                obra = None
                if tipo == "obra_social":
                    obra = c2.selectbox("Obra social", options=obras, format_func=lambda o: o["nombre"], key="pac_obra")
                categoria = c1.selectbox(
                    "Categoría",
                    options=[None] + categorias,
                    format_func=lambda c: "-" if c is None else c["nombre"],
                    key="pac_cat",
                )
                nota = st.text_area("Nota sobre la lesión", height=80, key="pac_nota")

                if st.button("Crear paciente", key="pac_submit"):
                    try:
                        res = api_post(
                            "/api/pacientes",
                            {
                                "nombre_paciente": nombre.strip(),
                                "sesiones_totales": int(sesiones_totales),
                                "tipo_paciente": tipo,
                                "obra_social_id": obra["id"] if obra else None,
                                "categoria_id": categoria["id"] if categoria else None,
                                "nota_lesion": nota.strip() or None,
                                "nombre_kinesiologo": kine.strip() or None,
                            },
                            token=token,
                        )
                        st.success(res.get("mensaje"))
                    except ValueError as e:
                        st.error(str(e))

            st.divider()

            c1, c2, c3 = st.columns([2, 1, 1])
            busqueda = c1.text_input("Buscar", key="pac_busqueda")
            pagina = c2.number_input("Página", min_value=1, value=1, key="pac_pagina")
            res = api_get(
                "/api/pacientes", token=token, params={"q": busqueda or None, "pagina": int(pagina), "tamano": 9}
            )
            c3.caption(f"{res['total']} pacientes · {res['total_paginas']} páginas")

            for p in res["pacientes"]:
                progreso = p["sesiones_completadas"] / p["sesiones_totales"] if p["sesiones_totales"] else 0
                with st.container(border=True):
                    st.write(
                        f"**{p['nombre_paciente']}** | {p.get('categoria') or '-'} | "
                        f"{p.get('obra_social') or 'Particular'} | Kinesiólogo: {p.get('nombre_kinesiologo') or '-'}"
                    )
                    st.progress(min(progreso, 1.0), text=f"{p['sesiones_completadas']}/{p['sesiones_totales']} sesiones")
                    if st.button("Eliminar", key=f"pac_del_{p['id']}"):
                        api_delete(f"/api/pacientes/{p['id']}", token=token)
                        st.rerun()
        except PermissionError as e:
            sesion_invalida(e)
        except (ValueError, requests.RequestException) as e:
            st.error(f"Error pacientes: {e}")



# TAB 2 - Sesiones y evaluación

with tab2:
    st.subheader("Sesión del día y evaluación")

    token = require_auth()
    if token:
        try:
            paciente = elegir_paciente(token, "ses")
            if paciente:
                pid = paciente["id"]

                c1, c2 = st.columns(2)
                sentimiento = c1.radio(
                    "¿Cómo llega hoy?",
                    list(COLOR_SENTIMIENTO),
                    format_func=lambda s: f"{COLOR_SENTIMIENTO[s]} {s}",
                    horizontal=True,
                    key="ses_sent",
                )
                if c1.button("Registrar sesión", key="ses_submit"):
                    api_post(f"/api/pacientes/{pid}/sesiones", {"sentimiento": sentimiento}, token=token)
                    refrescar_estado()

                estado = load_estado(token, pid)
                with c2:
                    if not estado["ultima_sesion"]:
                        st.info("El paciente todavía no tiene sesiones.")
                    else:
                        ult = estado["ultima_sesion"]
                        st.write(f"Última sesión: **{ult['fecha']} {ult['hora']}** {COLOR_SENTIMIENTO[ult['sentimiento']]}")
                        st.write(
                            f"Pre: {'✔' if estado['pre_completada'] else '✘'} "
                            f"({estado['promedio_pre'] if estado['promedio_pre'] is not None else '-'}) · "
                            f"Post: {'✔' if estado['post_completada'] else '✘'} "
                            f"({estado['promedio_post'] if estado['promedio_post'] is not None else '-'})"
                        )
                        if estado["promedio_general"] is not None:
                            st.metric("Promedio general", estado["promedio_general"])

                        with st.expander("Corregir última sesión"):
                            fecha_ed = st.text_input("Fecha (DD-MM-YYYY)", value=ult["fecha"], key=f"ed_f_{ult['id']}")
                            hora_ed = st.text_input("Hora (HH:MM)", value=ult["hora"], key=f"ed_h_{ult['id']}")
                            sent_ed = st.selectbox(
                                "Sentimiento",
                                list(COLOR_SENTIMIENTO),
                                index=list(COLOR_SENTIMIENTO).index(ult["sentimiento"]),
                                key=f"ed_s_{ult['id']}",
                            )
                            if st.button("Guardar cambios", key=f"ed_submit_{ult['id']}"):
                                api_put(
                                    f"/api/sesiones/{ult['id']}",
                                    {"fecha": fecha_ed, "hora": hora_ed, "sentimiento": sent_ed},
                                    token=token,
                                )
                                refrescar_estado()

                if estado["ultima_sesion"]:
                    tipo = "post" if estado["puede_hacer_post"] else "pre"
                    st.divider()
                    st.write(f"**{'Post' if tipo == 'post' else 'Pre'}-evaluación**")
                    respuestas = []
                    for q in load_preguntas(token, tipo):
                        valor = st.slider(
                            q["texto"],
                            min_value=q["minimo"],
                            max_value=q["maximo"],
                            value=q["defecto"],
                            help=q["descripcion"],
                            key=f"ev_{pid}_{q['id']}",
                        )
                        respuestas.append({"questionId": q["id"], "value": valor})

                    if st.button("Guardar evaluación", key="ev_submit"):
                        res = api_post(
                            f"/api/pacientes/{pid}/evaluaciones", {"tipo": tipo, "respuestas": respuestas}, token=token
                        )
                        st.toast(res.get("mensaje"))
                        refrescar_estado()

                with st.expander("Historial de evaluaciones"):
                    historial = api_get(f"/api/pacientes/{pid}/evaluaciones", token=token)
                    if not historial:
                        st.info("Sin evaluaciones.")
                    for ev in historial:
                        st.write(
                            f"- **{ev['sesion_fecha']} {ev['sesion_hora']}** | {ev['tipo']} | "
                            + ", ".join(f"{k}: {v}" for k, v in ev["promedios"].items())
                        )
        except PermissionError as e:
            sesion_invalida(e)
        except (ValueError, requests.RequestException) as e:
            st.error(f"Error sesiones: {e}")



# TAB 3 - Estadísticas

with tab3:
    st.subheader("Estadísticas de sesiones")

    token = require_auth()
    if token:
        try:
            c1, c2 = st.columns(2)

            with c1:
                usar_fecha = st.checkbox("Filtrar por día", key="est_usar_fecha")
                dia = st.date_input("Día", value=date.today(), key="est_dia", disabled=not usar_fecha)
                params = {"fecha": dia.strftime(FORMATO_FECHA)} if usar_fecha else None
                horas = api_get("/api/estadisticas/horas", token=token, params=params)
                # "HH:00" ordena bien como texto
                st.bar_chart(pd.DataFrame(horas["datos"]), x="hora", y="cantidad")
                st.caption(f"Total: {horas['total_sesiones']} · Hora pico: {horas['hora_pico'] or '-'}")

            with c2:
                filtro = st.selectbox("Período", list(FILTROS), format_func=FILTROS.get, index=1, key="est_filtro")
                periodos = api_get("/api/estadisticas/periodos", token=token, params={"filtro": filtro})
                df = pd.DataFrame(periodos["datos"])
                # tabla para conservar el orden cronológico de las etiquetas
                st.dataframe(
                    df,
                    hide_index=True,
                    use_container_width=True,
                    column_config={
                        "periodo": "Período",
                        "cantidad": st.column_config.ProgressColumn(
                            "Sesiones", format="%d", min_value=0, max_value=max(int(df["cantidad"].max()), 1)
                        ),
                    },
                )
                st.caption(f"Total: {periodos['total_sesiones']}")
        except PermissionError as e:
            sesion_invalida(e)
        except (ValueError, requests.RequestException) as e:
            st.error(f"Error estadísticas: {e}")



# TAB 4 - Administración

def administrar_catalogo(token: str, path: str, titulo: str, key: str) -> None:
    st.write(f"**{titulo}**")
    items = api_get(path, token=token)

    c1, c2, c3 = st.columns([2, 3, 1])
    nombre = c1.text_input("Nombre", key=f"{key}_nombre")
    descripcion = c2.text_input("Descripción", key=f"{key}_desc")
    if c3.button("Agregar", key=f"{key}_add"):
        try:
            api_post(path, {"nombre": nombre, "descripcion": descripcion or None}, token=token)
            st.cache_data.clear()
            st.rerun()
        except ValueError as e:
            st.error(str(e))

    for it in items:
        c1, c2 = st.columns([5, 1])
        c1.write(f"- {it['nombre']} ({it['cantidad_pacientes']} pacientes) {it.get('descripcion') or ''}")
        if c2.button("Eliminar", key=f"{key}_del_{it['id']}"):
            try:
                api_delete(f"{path}/{it['id']}", token=token)
                st.cache_data.clear()
                st.rerun()
            except ValueError as e:
                st.error(str(e))


with tab4:
    st.subheader("Administración")

    token = require_auth()
    if token:
        try:
            administrar_catalogo(token, "/api/categorias", "Categorías", "cat")
            st.divider()
            administrar_catalogo(token, "/api/obras-sociales", "Obras sociales", "obra")
        except PermissionError as e:
            sesion_invalida(e)
        except requests.RequestException as e:
            st.error(f"Error administración: {e}")



# TAB 5 - Exportar

with tab5:
    st.subheader("Exportar sesiones a Excel")

    token = require_auth()
    if token:
        c1, c2 = st.columns(2)
        desde = c1.date_input("Desde", value=date.today() - timedelta(days=7), key="exp_desde")
        hasta = c2.date_input("Hasta", value=date.today(), key="exp_hasta")

        if st.button("Generar Excel", key="exp_submit"):
            payload = {"startDate": desde.strftime(FORMATO_FECHA), "endDate": hasta.strftime(FORMATO_FECHA)}
            try:
                contenido = api_post_bytes("/api/export-sesiones", payload, token=token)
                st.download_button(
                    "Descargar",
                    data=contenido,
                    file_name=f"sesiones_{payload['startDate']}_a_{payload['endDate']}.xlsx",
                    mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
                )
            except PermissionError as e:
                sesion_invalida(e)
            except (ValueError, requests.RequestException) as e:
                st.error(str(e))
