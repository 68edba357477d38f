from conftest import create_client_user


def _origins(api, headers, **params):
    res = api.get("/api/origins", headers=headers, params=params)
    assert res.status_code == 200
    return res.json()["data"]


def test_create_and_update_origin(api, admin_headers, crm_client):
    client_id, _ = crm_client
    res = api.post("/api/origins", headers=admin_headers, json={"name": "Feira", "color": "#f59e0b", "client_id": client_id})
    assert res.status_code == 201
    origin = res.json()["data"]
    assert origin["is_default"] is False

    res = api.put(f"/api/origins/{origin['id']}", headers=admin_headers, json={"name": "Feira 2026"})
    assert res.status_code == 200
    assert res.json()["data"]["name"] == "Feira 2026"
    assert res.json()["data"]["color"] == "#f59e0b"


def test_origin_name_is_unique_per_client(api, admin_headers, crm_client):
    client_id, _ = crm_client
    res = api.post("/api/origins", headers=admin_headers, json={"name": "Google Ads", "client_id": client_id})
    assert res.status_code == 400
    assert res.json()["error"] == "Já existe uma origem com este nome"


def test_default_origins_cannot_be_deleted(api, admin_headers, crm_client):
    client_id, _ = crm_client
    default = _origins(api, admin_headers, client_id=client_id)[0]

    res = api.delete(f"/api/origins/{default['id']}", headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["error"] == "Origens padrão não podem ser removidas"


def test_delete_custom_origin(api, admin_headers, crm_client):
    client_id, _ = crm_client
    origin_id = api.post("/api/origins", headers=admin_headers, json={"name": "Evento", "client_id": client_id}).json()["data"]["id"]

    assert api.delete(f"/api/origins/{origin_id}", headers=admin_headers).status_code == 200
    assert all(o["id"] != origin_id for o in _origins(api, admin_headers, client_id=client_id))


def test_client_manages_only_own_origins(api, admin_headers, crm_client):
    client_id, _ = crm_client
    headers = create_client_user(api, admin_headers, client_id)

    res = api.post("/api/origins", headers=headers, json={"name": "WhatsApp"})
    assert res.status_code == 201
    assert res.json()["data"]["client_id"] == client_id
    assert len(_origins(api, headers)) == 6
