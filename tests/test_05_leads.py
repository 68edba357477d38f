from datetime import date, timedelta

from conftest import create_client, create_lead


def test_lead_is_created_in_first_stage(api, admin_headers, crm_client):
    client_id, funnel = crm_client
    lead_id = create_lead(api, admin_headers, client_id, funnel["id"], value=1500.5, source="Google Ads")

    lead = api.get(f"/api/leads/{lead_id}", headers=admin_headers).json()["data"]
    assert lead["stage_id"] == funnel["stages"][0]["id"]
    assert lead["stage_name"] == "Novo Lead"
    assert lead["funnel_name"] == "Funil Principal"
    assert lead["client_name"] == "Empresa ABC"
    assert lead["status"] == "active"
    assert lead["value"] == 1500.5


def test_create_lead_validations(api, admin_headers, crm_client):
    client_id, funnel = crm_client

    res = api.post("/api/leads", headers=admin_headers, json={"name": "  ", "funnel_id": funnel["id"], "client_id": client_id})
    assert res.status_code == 400

    res = api.post("/api/leads", headers=admin_headers, json={"name": "Sem cliente", "funnel_id": funnel["id"]})
    assert res.status_code == 400
    assert res.json()["error"] == "Cliente é obrigatório"

    other_client = create_client(api, admin_headers, name="Outra", email="outra@x.com")
    res = api.post("/api/leads", headers=admin_headers, json={
        "name": "Funil de outro cliente", "funnel_id": funnel["id"], "client_id": other_client
    })
    assert res.status_code == 400
    assert res.json()["error"] == "Funil não encontrado ou não pertence ao cliente"


def test_move_lead_between_stages(api, admin_headers, crm_client):
    client_id, funnel = crm_client
    lead_id = create_lead(api, admin_headers, client_id, funnel["id"])
    target = funnel["stages"][2]

    res = api.put(f"/api/leads/{lead_id}/stage", headers=admin_headers, json={"stage_id": target["id"]})
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Estágio do lead atualizado com sucesso"
    assert body["data"]["stage_id"] == target["id"]
    assert body["data"]["stage_name"] == "Proposta"


def test_move_lead_to_current_stage_is_noop(api, admin_headers, crm_client, webhook_post):
    client_id, funnel = crm_client
    api.post("/api/webhooks", headers=admin_headers, json={
        "client_id": client_id, "url": "https://hooks.exemplo.com/crm", "events": ["stage_changed"]
    })
    lead_id = create_lead(api, admin_headers, client_id, funnel["id"])

    res = api.put(f"/api/leads/{lead_id}/stage", headers=admin_headers, json={"stage_id": funnel["stages"][0]["id"]})
    assert res.status_code == 200
    assert res.json()["message"] == "Lead já está neste estágio"
    webhook_post.assert_not_called()


def test_move_lead_to_stage_of_other_funnel_is_rejected(api, admin_headers, crm_client):
    client_id, funnel = crm_client
    res = api.post("/api/funnels", headers=admin_headers, json={
        "client_id": client_id, "name": "Outro funil", "stages": [{"name": "X"}]
    })
    other_funnel = api.get(f"/api/funnels/{res.json()['data']['id']}", headers=admin_headers).json()["data"]
    lead_id = create_lead(api, admin_headers, client_id, funnel["id"])

    res = api.put(f"/api/leads/{lead_id}/stage", headers=admin_headers, json={"stage_id": other_funnel["stages"][0]["id"]})
    assert res.status_code == 400
    assert res.json()["error"] == "Estágio não encontrado ou não pertence ao funil do lead"

    lead = api.get(f"/api/leads/{lead_id}", headers=admin_headers).json()["data"]
    assert lead["stage_id"] == funnel["stages"][0]["id"]


def test_update_lead_partial(api, admin_headers, crm_client):
    client_id, funnel = crm_client
    lead_id = create_lead(api, admin_headers, client_id, funnel["id"], phone="11911112222")

    res = api.put(f"/api/leads/{lead_id}", headers=admin_headers, json={"notes": "Ligar amanhã"})
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["notes"] == "Ligar amanhã"
    assert data["phone"] == "11911112222"


def test_update_lead_without_changes(api, admin_headers, crm_client):
    client_id, funnel = crm_client
    lead_id = create_lead(api, admin_headers, client_id, funnel["id"])

    res = api.put(f"/api/leads/{lead_id}", headers=admin_headers, json={})
    assert res.status_code == 400
    assert res.json()["error"] == "Nenhum campo para atualizar foi fornecido"

    res = api.put(f"/api/leads/{lead_id}", headers=admin_headers, json={"name": "Maria Souza"})
    assert res.status_code == 400
    assert res.json()["error"] == "Nenhuma alteração foi feita"


def test_update_lead_invalid_status(api, admin_headers, crm_client):
    client_id, funnel = crm_client
    lead_id = create_lead(api, admin_headers, client_id, funnel["id"])
    res = api.put(f"/api/leads/{lead_id}", headers=admin_headers, json={"status": "arquivado"})
    assert res.status_code == 400


def test_list_leads_filters(api, admin_headers, crm_client):
    client_id, funnel = crm_client
    create_lead(api, admin_headers, client_id, funnel["id"], name="Ana Google", source="Google Ads")
    create_lead(api, admin_headers, client_id, funnel["id"], name="Bruno Meta", source="Meta Ads", email="bruno@x.com")
    won_id = create_lead(api, admin_headers, client_id, funnel["id"], name="Carla Ganha", email="carla@x.com")
    api.put(f"/api/leads/{won_id}", headers=admin_headers, json={"status": "won"})

    def names(**params):
        res = api.get("/api/leads", headers=admin_headers, params=params)
        assert res.status_code == 200
        return sorted(l["name"] for l in res.json()["data"])

    assert names() == ["Ana Google", "Bruno Meta"]
    assert names(status="won") == ["Carla Ganha"]
    assert names(status="all") == ["Ana Google", "Bruno Meta", "Carla Ganha"]
    assert names(source="Meta Ads") == ["Bruno Meta"]
    assert names(search="bruno@") == ["Bruno Meta"]
    assert names(funnel_id=funnel["id"], client_id=client_id) == ["Ana Google", "Bruno Meta"]

    in_two_days = (date.today() + timedelta(days=2)).isoformat()
    assert names(created_from=in_two_days) == []
    two_days_ago = (date.today() - timedelta(days=2)).isoformat()
    assert names(created_from=two_days_ago, created_to=in_two_days) == ["Ana Google", "Bruno Meta"]


def test_delete_lead(api, admin_headers, crm_client):
    client_id, funnel = crm_client
    lead_id = create_lead(api, admin_headers, client_id, funnel["id"])

    assert api.delete(f"/api/leads/{lead_id}", headers=admin_headers).status_code == 200
    res = api.get(f"/api/leads/{lead_id}", headers=admin_headers)
    assert res.status_code == 404
    assert res.json()["error"] == "Lead não encontrado"
