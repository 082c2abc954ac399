from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# La DB de tests se fija antes de importar consultorio (el engine se crea al importar)
_TMP_DIR = tempfile.mkdtemp(prefix="consultorio-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_TMP_DIR) / 'test.sqlite'}"
os.environ["JWT_SECRET"] = "test-secret"

from consultorio import auth_models, models  # noqa: E402,F401  registra las tablas
from consultorio.db import Base, engine  # noqa: E402


@pytest.fixture(autouse=True)
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
