from typing import Optional
from urllib.parse import urlparse
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

import models
from core.deps import get_db, get_current_user
from core.permissions import is_admin, scoped_client_id
from core.responses import success_response
from core.logger import setup_logger
from schemas import WebhookCreate, WebhookUpdate
from services import funnel_service
from services.webhook_dispatcher import send_test
from websocket_manager import manager

logger = setup_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

LOGS_DEFAULT_LIMIT = 50


# --- Utils ---

def is_valid_url(url: str) -> bool:
    """URL absoluta http(s) com domínio"""
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        # ex: colchete IPv6 não fechado
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_events(events) -> list:
    if not isinstance(events, list) or not events:
        raise HTTPException(status_code=400, detail="Pelo menos um evento deve ser selecionado")
    for event in events:
        if event not in models.WEBHOOK_EVENTS:
            raise HTTPException(status_code=400, detail=f"Evento inválido: {event}")
    # Remove duplicados preservando a ordem
    return list(dict.fromkeys(events))


def validate_funnel(db: Session, funnel_id: Optional[int], client_id: int) -> None:
    if funnel_id and not funnel_service.get_active_funnel(db, funnel_id, client_id):
        raise HTTPException(status_code=400, detail="Funil não encontrado ou não pertence ao cliente")


def serialize_webhook(webhook: models.Webhook) -> dict:
    return {
        "id": webhook.id,
        "client_id": webhook.client_id,
        "client_name": webhook.client.name if webhook.client else None,
        "funnel_id": webhook.funnel_id,
        "funnel_name": webhook.funnel.name if webhook.funnel else None,
        "url": webhook.url,
        "events": list(webhook.events or []),
        "active": webhook.active,
        "created_at": webhook.created_at,
    }


def serialize_log(log: models.WebhookLog) -> dict:
    return {
        "id": log.id,
        "webhook_id": log.webhook_id,
        "event_type": log.event_type,
        "payload": log.payload,
        "response_status": log.response_status,
        "response_body": log.response_body,
        "created_at": log.created_at,
    }


def get_webhook_for_user(db: Session, webhook_id: int, user: models.User) -> models.Webhook:
    query = db.query(models.Webhook).filter(models.Webhook.id == webhook_id)
    if not is_admin(user):
        query = query.filter(models.Webhook.client_id == user.client_id)
    webhook = query.first()
    if not webhook:
        raise HTTPException(status_code=404, detail="Webhook não encontrado")
    return webhook


# --- Endpoints ---

@router.get("", summary="Listar webhooks")
def list_webhooks(
    client_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    query = db.query(models.Webhook)
    client_id = scoped_client_id(current_user, client_id)
    if client_id:
        query = query.filter(models.Webhook.client_id == client_id)
    webhooks = query.order_by(models.Webhook.created_at.desc(), models.Webhook.id.desc()).all()
    return success_response([serialize_webhook(w) for w in webhooks])


@router.get("/{webhook_id}", summary="Obter webhook")
def read_webhook(
    webhook_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    return success_response(serialize_webhook(get_webhook_for_user(db, webhook_id, current_user)))


@router.post("", summary="Criar webhook", status_code=status.HTTP_201_CREATED)
def create_webhook(
    data: WebhookCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    """
    Cadastra uma URL para receber POSTs nos eventos escolhidos:
    `lead_created`, `lead_updated`, `stage_changed`, `lead_won`, `lead_lost`.
    Sem `funnel_id` o webhook vale para todos os funis do cliente.
    """
    client_id = data.client_id if is_admin(current_user) else current_user.client_id
    if not client_id:
        raise HTTPException(status_code=400, detail="Cliente é obrigatório")

    url = (data.url or "").strip()
    if not is_valid_url(url):
        raise HTTPException(status_code=400, detail="URL inválida")

    events = validate_events(data.events)
    validate_funnel(db, data.funnel_id, client_id)

    webhook = models.Webhook(
        client_id=client_id,
        funnel_id=data.funnel_id or None,
        url=url,
        events=events,
        active=True if data.active is None else data.active
    )
    db.add(webhook)
    db.commit()
    db.refresh(webhook)
    logger.info(f"🔗 Webhook {webhook.id} criado para o cliente {client_id}: {events}")

    background_tasks.add_task(manager.notify, "webhook_updated", {"id": webhook.id})
    return success_response({"id": webhook.id}, "Webhook criado com sucesso", status_code=status.HTTP_201_CREATED)


@router.put("/{webhook_id}", summary="Atualizar webhook")
def update_webhook(
    webhook_id: int,
    data: WebhookUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    """
    Atualização parcial. `funnel_id: null` volta a valer para todos os funis.
    """
    webhook = get_webhook_for_user(db, webhook_id, current_user)
    fields = data.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="Nenhum campo para atualizar foi fornecido")

    if fields.get("url") is not None:
        url = fields["url"].strip()
        if not is_valid_url(url):
            raise HTTPException(status_code=400, detail="URL inválida")
        webhook.url = url

    if "funnel_id" in fields:
        validate_funnel(db, fields["funnel_id"], webhook.client_id)
        webhook.funnel_id = fields["funnel_id"] or None

    if fields.get("events") is not None:
        webhook.events = validate_events(fields["events"])

    if fields.get("active") is not None:
        webhook.active = fields["active"]

    db.commit()
    db.refresh(webhook)

    background_tasks.add_task(manager.notify, "webhook_updated", {"id": webhook.id})
    return success_response(serialize_webhook(webhook), "Webhook atualizado com sucesso")


@router.delete("/{webhook_id}", summary="Remover webhook")
def delete_webhook(
    webhook_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    webhook = get_webhook_for_user(db, webhook_id, current_user)
    db.delete(webhook)
    db.commit()
    logger.info(f"🗑️ Webhook {webhook_id} removido por {current_user.email}")

    background_tasks.add_task(manager.notify, "webhook_updated", {"id": webhook_id, "deleted": True})
    return success_response(message="Webhook removido com sucesso")


@router.get("/{webhook_id}/logs", summary="Histórico de envios")
def list_webhook_logs(
    webhook_id: int,
    limit: int = LOGS_DEFAULT_LIMIT,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    """
    Últimas tentativas de envio do webhook (inclusive testes), mais recentes primeiro.
    """
    webhook = get_webhook_for_user(db, webhook_id, current_user)
    limit = max(1, min(limit, 500))
    logs = db.query(models.WebhookLog).filter(
        models.WebhookLog.webhook_id == webhook.id
    ).order_by(models.WebhookLog.id.desc()).limit(limit).all()
    return success_response([serialize_log(l) for l in logs])


@router.post("/{webhook_id}/test", summary="Testar webhook")
def test_webhook(
    webhook_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    """
    Envia um payload sintético (evento `test`) pelo mesmo caminho de envio real
    e registra o resultado no histórico.
    """
    webhook = get_webhook_for_user(db, webhook_id, current_user)
    result = send_test(db, webhook)
    if result["success"]:
        return success_response(result, "Webhook testado com sucesso")
    return success_response(result, "Webhook testado, mas houve erro na resposta")
