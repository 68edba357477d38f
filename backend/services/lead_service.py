from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

import models
from core.logger import setup_logger
from core.permissions import is_admin, scoped_client_id
from services import funnel_service
from services.webhook_dispatcher import dispatch_event, event_for_status

logger = setup_logger(__name__)

EDITABLE_TEXT_FIELDS = ("name", "email", "phone", "source", "notes")


def serialize_lead(lead: models.Lead) -> dict:
    return {
        "id": lead.id,
        "client_id": lead.client_id,
        "client_name": lead.client.name if lead.client else None,
        "funnel_id": lead.funnel_id,
        "funnel_name": lead.funnel.name if lead.funnel else None,
        "stage_id": lead.stage_id,
        "stage_name": lead.stage.name if lead.stage else None,
        "stage_color": lead.stage.color if lead.stage else None,
        "name": lead.name,
        "phone": lead.phone,
        "email": lead.email,
        "source": lead.source,
        "value": lead.value,
        "notes": lead.notes,
        "status": lead.status,
        "created_at": lead.created_at,
        "updated_at": lead.updated_at,
    }


def _lead_query(db: Session):
    return db.query(models.Lead).options(
        joinedload(models.Lead.client),
        joinedload(models.Lead.funnel),
        joinedload(models.Lead.stage)
    )


def get_lead_for_user(db: Session, lead_id: int, user: models.User) -> models.Lead:
    """Lead visível ao usuário (admin vê todos, cliente só os próprios) ou 404"""
    query = _lead_query(db).filter(models.Lead.id == lead_id)
    if not is_admin(user):
        query = query.filter(models.Lead.client_id == user.client_id)
    lead = query.first()
    if not lead:
        raise HTTPException(status_code=404, detail="Lead não encontrado")
    return lead


def list_leads(
    db: Session,
    user: models.User,
    client_id: Optional[int] = None,
    funnel_id: Optional[int] = None,
    status: Optional[str] = "active",
    source: Optional[str] = None,
    search: Optional[str] = None,
    created_from: Optional[date] = None,
    created_to: Optional[date] = None,
    updated_from: Optional[date] = None,
    updated_to: Optional[date] = None,
):
    query = _lead_query(db)

    client_id = scoped_client_id(user, client_id)
    if client_id:
        query = query.filter(models.Lead.client_id == client_id)
    if funnel_id:
        query = query.filter(models.Lead.funnel_id == funnel_id)
    if status and status != "all":
        query = query.filter(models.Lead.status == status)
    if source:
        query = query.filter(models.Lead.source == source)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            models.Lead.name.ilike(term),
            models.Lead.email.ilike(term),
            models.Lead.phone.ilike(term)
        ))

    # Intervalos de data inclusivos (dia inteiro)
    if created_from:
        query = query.filter(models.Lead.created_at >= datetime.combine(created_from, time.min))
    if created_to:
        query = query.filter(models.Lead.created_at < datetime.combine(created_to + timedelta(days=1), time.min))
    if updated_from:
        query = query.filter(models.Lead.updated_at >= datetime.combine(updated_from, time.min))
    if updated_to:
        query = query.filter(models.Lead.updated_at < datetime.combine(updated_to + timedelta(days=1), time.min))

    return query.order_by(models.Lead.created_at.desc(), models.Lead.id.desc()).all()


def create_lead(db: Session, user: models.User, data) -> models.Lead:
    name = (data.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Nome e funil são obrigatórios")

    client_id = data.client_id if is_admin(user) else user.client_id
    if not client_id:
        raise HTTPException(status_code=400, detail="Cliente é obrigatório")

    funnel = funnel_service.get_active_funnel(db, data.funnel_id, client_id)
    if not funnel:
        raise HTTPException(status_code=400, detail="Funil não encontrado ou não pertence ao cliente")

    stage = funnel_service.first_stage(db, funnel.id)
    if not stage:
        raise HTTPException(status_code=400, detail="Funil não possui estágios configurados")

    lead = models.Lead(
        client_id=client_id,
        funnel_id=funnel.id,
        stage_id=stage.id,
        name=name,
        email=(data.email or "").strip(),
        phone=(data.phone or "").strip(),
        source=(data.source or "").strip(),
        value=float(data.value or 0),
        notes=(data.notes or "").strip(),
        status="active"
    )
    db.add(lead)
    try:
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Erro ao criar lead: {e}")
        raise HTTPException(status_code=500, detail="Erro ao criar lead")
    db.refresh(lead)
    logger.info(f"🆕 Lead {lead.id} criado no funil {funnel.id} (cliente {client_id})")

    dispatch_event(db, lead, "lead_created")
    return lead


def update_lead(db: Session, user: models.User, lead_id: int, data) -> models.Lead:
    """
    Atualização parcial. Só os campos enviados são considerados;
    se nada mudar de fato, 400 e nenhum webhook.
    """
    lead = get_lead_for_user(db, lead_id, user)
    fields = data.model_dump(exclude_unset=True)

    if not any(value is not None for value in fields.values()):
        raise HTTPException(status_code=400, detail="Nenhum campo para atualizar foi fornecido")

    status = fields.get("status")
    if status is not None and status not in models.LEAD_STATUSES:
        raise HTTPException(status_code=400, detail=f"Status inválido: {status}")

    changes = {}
    for field in EDITABLE_TEXT_FIELDS:
        value = fields.get(field)
        if value is not None:
            value = value.strip()
            if field == "name" and not value:
                raise HTTPException(status_code=400, detail="Nome do lead não pode estar vazio")
            changes[field] = value
    if fields.get("value") is not None:
        changes["value"] = float(fields["value"])
    if status is not None:
        changes["status"] = status

    changes = {k: v for k, v in changes.items() if getattr(lead, k) != v}
    if not changes:
        raise HTTPException(status_code=400, detail="Nenhuma alteração foi feita")

    for field, value in changes.items():
        setattr(lead, field, value)
    try:
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Erro ao atualizar lead {lead_id}: {e}")
        raise HTTPException(status_code=500, detail="Erro ao atualizar lead")
    db.refresh(lead)

    event = event_for_status(status) if status is not None else "lead_updated"
    dispatch_event(db, lead, event)
    return lead


def move_lead_stage(db: Session, user: models.User, lead_id: int, stage_id: int):
    """
    Move o lead para outro estágio do MESMO funil.
    Retorna (lead, moved). moved=False quando já estava no estágio (sem escrita, sem webhook).
    """
    lead = get_lead_for_user(db, lead_id, user)

    new_stage = db.query(models.Stage).filter(
        models.Stage.id == stage_id,
        models.Stage.funnel_id == lead.funnel_id
    ).first()
    if not new_stage:
        raise HTTPException(status_code=400, detail="Estágio não encontrado ou não pertence ao funil do lead")

    if lead.stage_id == new_stage.id:
        return lead, False

    previous_stage_name = lead.stage.name if lead.stage else None
    lead.stage_id = new_stage.id
    try:
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Erro ao atualizar estágio do lead {lead_id}: {e}")
        raise HTTPException(status_code=500, detail="Erro ao atualizar estágio do lead")
    db.refresh(lead)
    logger.info(f"➡️ Lead {lead.id}: '{previous_stage_name}' -> '{new_stage.name}'")

    dispatch_event(db, lead, "stage_changed", {
        "previous_stage": previous_stage_name,
        "new_stage": new_stage.name
    })
    return lead, True


def delete_lead(db: Session, user: models.User, lead_id: int) -> None:
    lead = get_lead_for_user(db, lead_id, user)
    try:
        db.delete(lead)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Erro ao remover lead {lead_id}: {e}")
        raise HTTPException(status_code=500, detail="Erro ao remover lead")
