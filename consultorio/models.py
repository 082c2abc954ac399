from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """UTC sin tzinfo, como lo guardan las columnas DateTime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TipoPaciente(enum.Enum):
    PARTICULAR = "particular"
    OBRA_SOCIAL = "obra_social"


class Sentimiento(enum.Enum):
    VERDE = "verde"
    AMARILLO = "amarillo"
    ROJO = "rojo"


class Categoria(Base):
    __tablename__ = "categorias"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nombre: Mapped[str] = mapped_column(String(120), nullable=False)
    descripcion: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    pacientes: Mapped[list["Paciente"]] = relationship(back_populates="categoria")

    def __repr__(self) -> str:
        return f"Categoria({self.nombre})"


class ObraSocial(Base):
    __tablename__ = "obras_sociales"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nombre: Mapped[str] = mapped_column(String(120), nullable=False)
    descripcion: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    pacientes: Mapped[list["Paciente"]] = relationship(back_populates="obra_social")

    def __repr__(self) -> str:
        return f"ObraSocial({self.nombre})"


class Paciente(Base):
    __tablename__ = "pacientes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nombre_paciente: Mapped[str] = mapped_column(String(160), nullable=False)
    nombre_kinesiologo: Mapped[str | None] = mapped_column(String(160), nullable=True)
    tipo_paciente: Mapped[TipoPaciente] = mapped_column(
        Enum(TipoPaciente), default=TipoPaciente.PARTICULAR, nullable=False
    )
    obra_social_id: Mapped[str | None] = mapped_column(ForeignKey("obras_sociales.id"), nullable=True)
    categoria_id: Mapped[str | None] = mapped_column(ForeignKey("categorias.id"), nullable=True)
    nota_lesion: Mapped[str | None] = mapped_column(Text, nullable=True)
    sesiones_totales: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    obra_social: Mapped[ObraSocial | None] = relationship(back_populates="pacientes")
    categoria: Mapped[Categoria | None] = relationship(back_populates="pacientes")
    sesiones: Mapped[list["SesionDiaria"]] = relationship(back_populates="paciente", cascade="all, delete-orphan")
    evaluaciones: Mapped[list["Evaluacion"]] = relationship(back_populates="paciente", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Paciente({self.nombre_paciente})"


class SesionDiaria(Base):
    __tablename__ = "sesiones_diarias"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    paciente_id: Mapped[str] = mapped_column(ForeignKey("pacientes.id"), nullable=False)

    # texto: "DD-MM-YYYY" y "HH:MM" (24h)
    fecha: Mapped[str] = mapped_column(String(10), nullable=False)
    hora: Mapped[str] = mapped_column(String(5), nullable=False)
    sentimiento: Mapped[Sentimiento] = mapped_column(Enum(Sentimiento), nullable=False)

    paciente: Mapped["Paciente"] = relationship(back_populates="sesiones")
    evaluaciones: Mapped[list["Evaluacion"]] = relationship(back_populates="sesion", cascade="all, delete-orphan")


class Evaluacion(Base):
    __tablename__ = "evaluaciones"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    paciente_id: Mapped[str] = mapped_column(ForeignKey("pacientes.id"), nullable=False)
    sesion_id: Mapped[str] = mapped_column(ForeignKey("sesiones_diarias.id"), nullable=False)
    fecha: Mapped[str] = mapped_column(String(10), nullable=False)

    # JSON: [{"questionId": "stress_pre", "value": 7}, ...]
    respuestas_comprimidas: Mapped[str] = mapped_column(Text, nullable=False)
    # JSON: {"stress": 7.0, "eva": 3.0, ...}
    promedios_comprimidos: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    paciente: Mapped["Paciente"] = relationship(back_populates="evaluaciones")
    sesion: Mapped["SesionDiaria"] = relationship(back_populates="evaluaciones")
