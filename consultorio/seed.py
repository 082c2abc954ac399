from __future__ import annotations

from sqlalchemy import select

from .db import db_session
from .models import Categoria, ObraSocial

CATEGORIAS = [
    ("Deportiva", "Lesiones deportivas y readaptación"),
    ("Traumatológica", "Post-operatorios, fracturas, esguinces"),
    ("Neurológica", "ACV, lesiones medulares, enfermedades neurodegenerativas"),
    ("Respiratoria", None),
]

OBRAS_SOCIALES = [
    ("OSDE", None),
    ("Swiss Medical", None),
    ("IOMA", "Obra social de la provincia de Buenos Aires"),
    ("PAMI", "Jubilados y pensionados"),
]


def seed_base() -> None:
    """
    Carga datos mínimos (idempotente):
    - categorías de paciente
    - obras sociales
    """
    with db_session() as s:
        for nombre, descripcion in CATEGORIAS:
            if s.execute(select(Categoria).where(Categoria.nombre == nombre)).scalar_one_or_none() is None:
                s.add(Categoria(nombre=nombre, descripcion=descripcion))

        for nombre, descripcion in OBRAS_SOCIALES:
            if s.execute(select(ObraSocial).where(ObraSocial.nombre == nombre)).scalar_one_or_none() is None:
                s.add(ObraSocial(nombre=nombre, descripcion=descripcion))
