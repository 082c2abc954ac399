from __future__ import annotations

import json
import logging
import random
from datetime import date, datetime, time, timedelta

from sqlalchemy import delete, select

from consultorio.db import db_session
from consultorio.evaluaciones import (
    PREGUNTAS_POST,
    PREGUNTAS_PRE,
    Respuesta,
    calcular_promedios,
    serializar_respuestas,
)
from consultorio.fechas import formatear_fecha, formatear_hora
from consultorio.models import (
    Categoria,
    Evaluacion,
    ObraSocial,
    Paciente,
    SesionDiaria,
    Sentimiento,
    TipoPaciente,
)
from consultorio.seed import seed_base
from consultorio.services import init_db

logger = logging.getLogger(__name__)


# =========================
# Config generación
# =========================
RANDOM_SEED = 42

PACIENTES_COUNT = 45

KINESIOLOGOS = ["Lic. Sofía Ramírez", "Lic. Martín Acosta", "Lic. Julieta Paz", None]

NOMBRES = [
    "Juan", "Lucía", "Mateo", "Valentina", "Santiago", "Camila", "Tomás", "Martina",
    "Joaquín", "Florencia", "Facundo", "Agustina", "Nicolás", "Carla", "Diego", "Paula",
]
APELLIDOS = [
    "González", "Rodríguez", "Fernández", "López", "Martínez", "Pérez", "Gómez", "Sánchez",
    "Romero", "Díaz", "Álvarez", "Torres", "Ruiz", "Suárez", "Benítez",
]

LESIONES = [
    None,
    "Esguince de tobillo grado II",
    "Post-operatorio de LCA",
    "Lumbalgia crónica",
    "Tendinopatía del manguito rotador",
    "Cervicalgia",
    "Fractura de radio distal",
]

# Afluencia por día de la semana (0=lun...6=dom)
AFLUENCIA_FACTOR = {
    0: 1.15,  # lun
    1: 1.05,  # mar
    2: 1.00,  # mié
    3: 1.05,  # jue
    4: 1.10,  # vie
    5: 0.45,  # sáb
    6: 0.00,  # dom (cerrado)
}

# Peso por hora de turno: picos a primera hora y a la salida del trabajo
PESO_HORA = {
    7: 0.8, 8: 1.4, 9: 1.6, 10: 1.3, 11: 1.0, 12: 0.6, 13: 0.4,
    14: 0.6, 15: 0.9, 16: 1.1, 17: 1.6, 18: 1.8, 19: 1.2, 20: 0.5,
}

PESO_SENTIMIENTO = {Sentimiento.VERDE: 0.6, Sentimiento.AMARILLO: 0.3, Sentimiento.ROJO: 0.1}


def reset_db() -> None:
    """Borra los datos clínicos (mantiene esquema, catálogos y usuarios)."""
    with db_session() as s:
        # Orden importante por las FK
        s.execute(delete(Evaluacion))
        s.execute(delete(SesionDiaria))
        s.execute(delete(Paciente))


def seed_pacientes(dias: int) -> None:
    hoy = datetime.now()

    with db_session() as s:
        categorias = list(s.scalars(select(Categoria)).all())
        obras = list(s.scalars(select(ObraSocial)).all())

        for _ in range(PACIENTES_COUNT):
            con_obra = bool(obras) and random.random() < 0.6
            s.add(
                Paciente(
                    nombre_paciente=f"{random.choice(NOMBRES)} {random.choice(APELLIDOS)}",
                    nombre_kinesiologo=random.choice(KINESIOLOGOS),
                    tipo_paciente=TipoPaciente.OBRA_SOCIAL if con_obra else TipoPaciente.PARTICULAR,
                    obra_social_id=random.choice(obras).id if con_obra else None,
                    categoria_id=random.choice(categorias).id if categorias and random.random() < 0.85 else None,
                    nota_lesion=random.choice(LESIONES),
                    sesiones_totales=random.choice([5, 8, 10, 10, 12, 15, 20]),
                    created_at=hoy - timedelta(days=random.randint(dias, dias + 30)),
                )
            )


def _respuestas_al_azar(preguntas, centro: float) -> list[Respuesta]:
    out = []
    for p in preguntas:
        if p.maximo > 10:
            # minutos de sesión
            valor = random.choice([30, 40, 45, 50, 60])
        else:
            valor = round(min(p.maximo, max(p.minimo, random.gauss(centro, 1.8))))
        out.append(Respuesta(question_id=p.id, value=valor))
    return out


def _evaluacion_demo(paciente_id: str, sesion_id: str, dia: date, sentimiento: Sentimiento) -> Evaluacion:
    centro = {Sentimiento.VERDE: 3.5, Sentimiento.AMARILLO: 5.5, Sentimiento.ROJO: 7.5}[sentimiento]
    respuestas = _respuestas_al_azar(PREGUNTAS_PRE, centro)
    if random.random() < 0.8:
        respuestas += _respuestas_al_azar(PREGUNTAS_POST, centro)

    return Evaluacion(
        paciente_id=paciente_id,
        sesion_id=sesion_id,
        fecha=formatear_fecha(dia),
        respuestas_comprimidas=serializar_respuestas(respuestas),
        promedios_comprimidos=json.dumps(calcular_promedios(respuestas)),
    )


def genera_sesiones(dias: int) -> int:
    start_day = date.today() - timedelta(days=dias)
    end_day = date.today()
    horas = list(PESO_HORA)
    pesos_hora = [PESO_HORA[h] for h in horas]

    creadas = 0
    with db_session() as s:
        pacientes = list(s.scalars(select(Paciente)).all())
        if not pacientes:
            raise RuntimeError("No hay pacientes. Ejecuta seed_pacientes primero.")

        # un paciente no viene dos veces el mismo día
        restantes = {p.id: p.sesiones_totales for p in pacientes}

        day = start_day
        while day <= end_day:
            factor = AFLUENCIA_FACTOR.get(day.weekday(), 1.0)
            if factor <= 0:
                day += timedelta(days=1)
                continue

            cupo = max(2, int(12 * factor + random.randint(-3, 3)))
            candidatos = [p for p in pacientes if restantes[p.id] > 0]
            random.shuffle(candidatos)

            for p in candidatos[:cupo]:
                hora = random.choices(horas, weights=pesos_hora, k=1)[0]
                inicio = datetime.combine(day, time(hora, random.choice([0, 15, 30, 45])))
                sentimiento = random.choices(list(PESO_SENTIMIENTO), weights=list(PESO_SENTIMIENTO.values()), k=1)[0]

                ses = SesionDiaria(
                    paciente_id=p.id,
                    fecha=formatear_fecha(day),
                    hora=formatear_hora(inicio),
                    sentimiento=sentimiento,
                )
                s.add(ses)
                s.flush()

                if random.random() < 0.65:
                    s.add(_evaluacion_demo(p.id, ses.id, day, sentimiento))

                restantes[p.id] -= 1
                creadas += 1

            day += timedelta(days=1)

    return creadas


def genera_demo(dias: int = 90, reset: bool = True) -> None:
    random.seed(RANDOM_SEED)

    init_db()
    seed_base()

    if reset:
        reset_db()

    seed_pacientes(dias)
    creadas = genera_sesiones(dias)

    logger.info("Demo generada: %d pacientes, %d sesiones", PACIENTES_COUNT, creadas)
    print(f"OK: base poblada con {creadas} sesiones de los últimos {dias} días.")


if __name__ == "__main__":
    genera_demo(reset=True)
