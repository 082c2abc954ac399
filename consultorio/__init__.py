"""
Backend del consultorio de kinesiología.

Estructura:
- config.py        : configuración desde entorno / .env
- db.py            : engine y sesiones SQLAlchemy
- models.py        : modelos ORM y enums
- fechas.py        : fechas/horas guardadas como texto
- estadisticas.py  : histogramas de sesiones (por hora y por período)
- evaluaciones.py  : cuestionarios pre/post y estado de evaluación
- services.py      : lógica de dominio (pacientes, sesiones, evaluaciones, catálogos)
- exportar.py      : exportación de sesiones a Excel
- auth_*.py        : usuarios del staff y JWT
- api_main.py      : API REST (FastAPI)
- cli.py           : herramientas de consola
- seed.py / genera_db_demo.py : datos iniciales y de demostración
"""
