"""
Disparo de webhooks dos eventos de lead.

Envio síncrono, sequencial, sem retry: cada tentativa (sucesso ou falha)
gera exatamente uma linha em webhook_logs. Nenhum erro de entrega ou de log
sobe para quem chamou; a escrita original do lead já está commitada.
"""
import os
from datetime import datetime, timezone
from typing import Optional

import httpx
from sqlalchemy import or_
from sqlalchemy.orm import Session

import models
from core.logger import setup_logger

logger = setup_logger(__name__)

WEBHOOK_TIMEOUT = float(os.getenv("WEBHOOK_TIMEOUT", "30"))
WEBHOOK_USER_AGENT = os.getenv("WEBHOOK_USER_AGENT", "CRM-System-Webhook/1.0")

TEST_EVENT = "test"


def event_for_status(status: Optional[str]) -> str:
    """Evento emitido por uma atualização de lead, a partir do status enviado"""
    if status == "won":
        return "lead_won"
    if status == "lost":
        return "lead_lost"
    return "lead_updated"


def build_payload(lead: models.Lead, event: str, extra: Optional[dict] = None) -> dict:
    payload = {
        "evento": event,
        "cliente_id": lead.client_id,
        "funil_id": lead.funnel_id,
        "lead_id": lead.id,
        "status": lead.status,
        "dados": {
            "nome": lead.name,
            "email": lead.email,
            "telefone": lead.phone,
            "origem": lead.source,
            "valor": lead.value,
            "observacoes": lead.notes,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if extra:
        payload.update(extra)
    return payload


def build_test_payload(webhook: models.Webhook) -> dict:
    now = datetime.now(timezone.utc)
    return {
        "evento": TEST_EVENT,
        "cliente_id": webhook.client_id,
        "funil_id": webhook.funnel_id or 1,
        "funil_nome": webhook.funnel.name if webhook.funnel else "Funil de Teste",
        "lead_id": f"test_lead_{int(now.timestamp())}",
        "estagio_anterior": "Novo Lead",
        "estagio_atual": "Em Contato",
        "status": "active",
        "dados": {
            "nome": "Lead de Teste",
            "email": "teste@email.com",
            "telefone": "(11) 99999-9999",
            "origem": "Teste Webhook",
            "valor": 1000.00,
            "observacoes": "Este é um teste de webhook",
        },
        "timestamp": now.isoformat(),
        "teste": True,
    }


def matching_webhooks(db: Session, client_id: int, funnel_id: int, event: str):
    """Webhooks ativos do cliente, do funil (ou de todos os funis), que assinam o evento"""
    candidates = db.query(models.Webhook).filter(
        models.Webhook.client_id == client_id,
        models.Webhook.active == True,
        or_(models.Webhook.funnel_id.is_(None), models.Webhook.funnel_id == funnel_id)
    ).order_by(models.Webhook.id.asc()).all()
    return [w for w in candidates if event in (w.events or [])]


def send_webhook(db: Session, webhook: models.Webhook, payload: dict, test: bool = False) -> dict:
    """
    Faz o POST e grava o log da tentativa.
    Retorna {"status_code", "response", "error"}; nunca levanta.
    """
    headers = {
        "Content-Type": "application/json",
        "User-Agent": WEBHOOK_USER_AGENT,
    }
    if test:
        headers["X-Webhook-Test"] = "true"

    status_code = None
    response_text = None
    error = None

    try:
        response = httpx.post(
            webhook.url,
            json=payload,
            headers=headers,
            timeout=WEBHOOK_TIMEOUT,
            follow_redirects=True
        )
        status_code = response.status_code
        response_text = response.text
        logger.info(f"📤 Webhook {webhook.id} [{payload.get('evento')}] -> {webhook.url} ({status_code})")
    except httpx.HTTPError as e:
        error = str(e) or e.__class__.__name__
        logger.warning(f"⚠️ Falha ao enviar webhook {webhook.id} para {webhook.url}: {error}")

    try:
        db.add(models.WebhookLog(
            webhook_id=webhook.id,
            event_type=payload.get("evento"),
            payload=payload,
            response_status=status_code,
            response_body=error if error else response_text
        ))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Erro ao salvar log do webhook {webhook.id}: {e}")

    return {"status_code": status_code, "response": response_text, "error": error}


def dispatch_event(db: Session, lead: models.Lead, event: str, extra: Optional[dict] = None) -> int:
    """
    Dispara o evento para todos os webhooks inscritos. Retorna quantos foram chamados.
    Erros são logados e engolidos.
    """
    try:
        webhooks = matching_webhooks(db, lead.client_id, lead.funnel_id, event)
        if not webhooks:
            return 0

        payload = build_payload(lead, event, extra)
        for webhook in webhooks:
            send_webhook(db, webhook, payload)
        return len(webhooks)
    except Exception as e:
        logger.error(f"❌ Erro ao disparar webhooks do lead {lead.id} ({event}): {e}")
        return 0


def send_test(db: Session, webhook: models.Webhook) -> dict:
    payload = build_test_payload(webhook)
    result = send_webhook(db, webhook, payload, test=True)
    status_code = result["status_code"]
    return {
        "success": status_code is not None and 200 <= status_code < 300,
        "status_code": status_code,
        "response": result["response"],
        "error": result["error"],
        "payload_sent": payload,
    }
