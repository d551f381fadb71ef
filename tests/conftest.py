from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app import create_app
from app.core.config import Config
from app.core.extensions import db
from app.core.models import Dependencia, TipoDocumento, Usuario, seed_demo_data
from app.core.permissions import Actor


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_BINDS = {"siga": "sqlite://"}
    SECRET_KEY = "test-secret"
    LOG_LEVEL = "WARNING"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _login_as(client, email: str, password: str):
    def _login():
        return client.post("/auth/login", json={"email": email, "password": password})

    return _login


@pytest.fixture
def login_admin(client):
    return _login_as(client, "admin@unamad.edu.pe", "admin123")


@pytest.fixture
def login_oti(client):
    return _login_as(client, "oti@unamad.edu.pe", "oti123")


@pytest.fixture
def login_fi(client):
    return _login_as(client, "fi@unamad.edu.pe", "fi123")


@pytest.fixture
def login_rectorado(client):
    return _login_as(client, "rectorado@unamad.edu.pe", "rect123")


@pytest.fixture
def login_patrimonio(client):
    return _login_as(client, "patrimonio@unamad.edu.pe", "patri123")


@pytest.fixture
def actors(app):
    """Service-level callers keyed by the demo user's mailbox name."""
    with app.app_context():
        return {
            user.email.split("@")[0]: Actor.from_user(user)
            for user in Usuario.query.order_by(Usuario.id.asc()).all()
        }


@pytest.fixture
def deps(app):
    with app.app_context():
        return {dep.siglas: dep.id for dep in Dependencia.query.all()}


@pytest.fixture
def tipos(app):
    with app.app_context():
        return {tipo.codigo: tipo.id for tipo in TipoDocumento.query.all()}
