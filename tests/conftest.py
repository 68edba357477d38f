import os
import tempfile

# Ambiente de teste: precisa estar definido ANTES de importar o app
_db_file = os.path.join(tempfile.mkdtemp(prefix="funilcrm_tests_"), "test.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_db_file}"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_FILE"] = ""
os.environ["SECRET_KEY"] = "test_secret_key"
os.environ["SUPER_ADMIN_EMAIL"] = "admin@crm.com"
os.environ["SUPER_ADMIN_PASSWORD"] = "admin123"
os.environ.pop("SENTRY_DSN", None)

import pytest
from unittest.mock import MagicMock, patch
from fastapi.testclient import TestClient

import models
from database import engine
from main import app, seed_super_admin

ADMIN_EMAIL = os.environ["SUPER_ADMIN_EMAIL"]
ADMIN_PASSWORD = os.environ["SUPER_ADMIN_PASSWORD"]


@pytest.fixture(autouse=True)
def reset_database():
    """Banco limpo a cada teste, só com o administrador"""
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)
    seed_super_admin()
    yield


@pytest.fixture
def api():
    with TestClient(app) as test_client:
        yield test_client


def login(api, email, password):
    res = api.post("/api/auth", json={"email": email, "password": password})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['data']['token']}"}


@pytest.fixture
def admin_headers(api):
    return login(api, ADMIN_EMAIL, ADMIN_PASSWORD)


def create_client(api, headers, name="Empresa ABC", email="contato@abc.com"):
    res = api.post("/api/clients", headers=headers, json={"name": name, "email": email, "phone": "11999999999"})
    assert res.status_code == 201, res.text
    return res.json()["data"]["id"]


def create_client_user(api, headers, client_id, email="user@abc.com", password="senha123"):
    res = api.post("/api/auth/users", headers=headers, json={
        "name": "Usuário Cliente",
        "email": email,
        "password": password,
        "role": "client",
        "client_id": client_id
    })
    assert res.status_code == 201, res.text
    return login(api, email, password)


def default_funnel(api, headers, client_id):
    res = api.get("/api/funnels", headers=headers, params={"client_id": client_id})
    assert res.status_code == 200, res.text
    funnels = res.json()["data"]
    assert len(funnels) == 1
    return funnels[0]


def create_lead(api, headers, client_id, funnel_id, **fields):
    body = {"name": "Maria Souza", "funnel_id": funnel_id, "client_id": client_id, "email": "maria@email.com"}
    body.update(fields)
    res = api.post("/api/leads", headers=headers, json=body)
    assert res.status_code == 201, res.text
    return res.json()["data"]["id"]


@pytest.fixture
def crm_client(api, admin_headers):
    """Cliente com funil padrão: (client_id, funnel)"""
    client_id = create_client(api, admin_headers)
    return client_id, default_funnel(api, admin_headers, client_id)


@pytest.fixture
def webhook_post():
    """Substitui o POST de saída dos webhooks; responde 200 'ok' por padrão"""
    with patch("services.webhook_dispatcher.httpx.post") as mock_post:
        mock_post.return_value = MagicMock(status_code=200, text="ok")
        yield mock_post
