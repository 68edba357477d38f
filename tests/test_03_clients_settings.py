from conftest import create_client, create_client_user, create_lead, default_funnel


def test_create_client_seeds_default_funnel_and_origins(api, admin_headers):
    client_id = create_client(api, admin_headers)

    funnel = default_funnel(api, admin_headers, client_id)
    assert funnel["name"] == "Funil Principal"
    assert funnel["description"] == "Funil padrão de vendas"
    assert [s["name"] for s in funnel["stages"]] == [
        "Novo Lead", "Em Contato", "Proposta", "Negociação", "Fechamento"
    ]
    assert [s["position"] for s in funnel["stages"]] == [1, 2, 3, 4, 5]

    origins = api.get("/api/origins", headers=admin_headers, params={"client_id": client_id}).json()["data"]
    assert len(origins) == 5
    assert all(o["is_default"] for o in origins)


def test_list_clients_with_counts(api, admin_headers):
    client_id = create_client(api, admin_headers)
    funnel = default_funnel(api, admin_headers, client_id)
    create_lead(api, admin_headers, client_id, funnel["id"])
    create_client_user(api, admin_headers, client_id)

    clients = api.get("/api/clients", headers=admin_headers).json()["data"]
    assert len(clients) == 1
    assert clients[0]["funnels_count"] == 1
    assert clients[0]["leads_count"] == 1
    assert clients[0]["users_count"] == 1


def test_create_client_requires_name(api, admin_headers):
    res = api.post("/api/clients", headers=admin_headers, json={"name": "   "})
    assert res.status_code == 400
    assert res.json()["error"] == "Nome do cliente não pode estar vazio"


def test_duplicate_client_email(api, admin_headers):
    create_client(api, admin_headers, name="Empresa A", email="mesmo@email.com")
    res = api.post("/api/clients", headers=admin_headers, json={"name": "Empresa B", "email": "mesmo@email.com"})
    assert res.status_code == 400
    assert res.json()["error"] == "Já existe um cliente com este email"


def test_client_email_is_case_insensitive(api, admin_headers):
    client_id = create_client(api, admin_headers, name="Empresa A", email="  Contato@Empresa.com ")
    client = api.get(f"/api/clients/{client_id}", headers=admin_headers).json()["data"]
    assert client["email"] == "contato@empresa.com"

    res = api.post("/api/clients", headers=admin_headers, json={"name": "Empresa B", "email": "CONTATO@empresa.COM"})
    assert res.status_code == 400
    assert res.json()["error"] == "Já existe um cliente com este email"

    other_id = create_client(api, admin_headers, name="Empresa C", email="c@empresa.com")
    res = api.put(f"/api/clients/{other_id}", headers=admin_headers, json={"email": "Contato@EMPRESA.com"})
    assert res.status_code == 400


def test_update_client_partial(api, admin_headers):
    client_id = create_client(api, admin_headers)
    res = api.put(f"/api/clients/{client_id}", headers=admin_headers, json={"phone": "1133334444"})
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["phone"] == "1133334444"
    assert data["name"] == "Empresa ABC"

    res = api.put(f"/api/clients/{client_id}", headers=admin_headers, json={})
    assert res.status_code == 400


def test_delete_client_with_active_leads_is_rejected(api, admin_headers):
    client_id = create_client(api, admin_headers)
    funnel = default_funnel(api, admin_headers, client_id)
    create_lead(api, admin_headers, client_id, funnel["id"])

    res = api.delete(f"/api/clients/{client_id}", headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["error"] == "Não é possível remover cliente que possui leads ativos"


def test_delete_client_soft_deletes_users_and_funnels(api, admin_headers):
    client_id = create_client(api, admin_headers)
    user_headers = create_client_user(api, admin_headers, client_id)

    res = api.delete(f"/api/clients/{client_id}", headers=admin_headers)
    assert res.status_code == 200

    assert api.get(f"/api/clients/{client_id}", headers=admin_headers).status_code == 404
    assert api.get("/api/funnels", headers=admin_headers, params={"client_id": client_id}).json()["data"] == []
    assert api.get("/api/auth", headers=user_headers).status_code == 401


def test_clients_are_admin_only(api, admin_headers):
    client_id = create_client(api, admin_headers)
    headers = create_client_user(api, admin_headers, client_id)
    assert api.get("/api/clients", headers=headers).status_code == 403
    assert api.post("/api/clients", headers=headers, json={"name": "X"}).status_code == 403


def test_branding_defaults_are_public(api):
    res = api.get("/api/settings/branding")
    assert res.status_code == 200
    assert res.json()["data"] == {"crm_name": "CRM System", "logo_url": ""}


def test_update_branding(api, admin_headers):
    res = api.put("/api/settings/branding", headers=admin_headers, json={
        "crm_name": "Meu CRM", "logo_url": "https://cdn.exemplo.com/logo.png"
    })
    assert res.status_code == 200
    assert api.get("/api/settings/branding").json()["data"] == {
        "crm_name": "Meu CRM", "logo_url": "https://cdn.exemplo.com/logo.png"
    }

    res = api.put("/api/settings/branding", headers=admin_headers, json={"crm_name": "  "})
    assert res.status_code == 400


def test_branding_update_is_admin_only(api, admin_headers):
    client_id = create_client(api, admin_headers)
    headers = create_client_user(api, admin_headers, client_id)
    res = api.put("/api/settings/branding", headers=headers, json={"crm_name": "Invasor"})
    assert res.status_code == 403
