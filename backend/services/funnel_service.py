from typing import List, Optional
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

import models
from core.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_STAGE_COLOR = "#3b82f6"

# Funil criado automaticamente junto com cada cliente
DEFAULT_FUNNEL_NAME = "Funil Principal"
DEFAULT_FUNNEL_DESCRIPTION = "Funil padrão de vendas"
DEFAULT_STAGES = [
    ("Novo Lead", "#ef4444"),
    ("Em Contato", "#f97316"),
    ("Proposta", "#eab308"),
    ("Negociação", "#3b82f6"),
    ("Fechamento", "#22c55e"),
]

DEFAULT_ORIGINS = [
    ("Google Ads", "#4285f4"),
    ("Meta Ads", "#1877f2"),
    ("Indicação", "#10b981"),
    ("Não Rastreado", "#6b7280"),
    ("Outras Origens", "#8b5cf6"),
]


def seed_client_defaults(db: Session, client: models.Client) -> models.Funnel:
    """Cria o funil padrão (5 estágios) e as origens padrão. Não faz commit."""
    funnel = models.Funnel(
        client_id=client.id,
        name=DEFAULT_FUNNEL_NAME,
        description=DEFAULT_FUNNEL_DESCRIPTION
    )
    db.add(funnel)
    db.flush()

    for position, (name, color) in enumerate(DEFAULT_STAGES, start=1):
        db.add(models.Stage(funnel_id=funnel.id, name=name, position=position, color=color))

    for name, color in DEFAULT_ORIGINS:
        db.add(models.Origin(client_id=client.id, name=name, color=color, is_default=True))

    return funnel


def _validate_stage_names(stages) -> None:
    if not stages:
        raise HTTPException(status_code=400, detail="Pelo menos um estágio deve ser fornecido")
    for stage in stages:
        if not (stage.name or "").strip():
            raise HTTPException(status_code=400, detail="Nome do estágio não pode estar vazio")


def get_active_funnel(db: Session, funnel_id: int, client_id: Optional[int] = None) -> Optional[models.Funnel]:
    """Funil ativo de um cliente ativo. client_id=None não restringe o cliente."""
    query = db.query(models.Funnel).join(models.Client).filter(
        models.Funnel.id == funnel_id,
        models.Funnel.active == True,
        models.Client.active == True
    )
    if client_id is not None:
        query = query.filter(models.Funnel.client_id == client_id)
    return query.first()


def first_stage(db: Session, funnel_id: int) -> Optional[models.Stage]:
    return db.query(models.Stage).filter(
        models.Stage.funnel_id == funnel_id
    ).order_by(models.Stage.position.asc()).first()


def count_active_leads(db: Session, **filters) -> int:
    query = db.query(func.count(models.Lead.id)).filter(models.Lead.status == "active")
    for column, value in filters.items():
        query = query.filter(getattr(models.Lead, column) == value)
    return query.scalar() or 0


def create_funnel(db: Session, client_id: int, name: str, description: Optional[str], stages: List) -> models.Funnel:
    """
    Cria funil + estágios numa única transação.
    Posições recalculadas 1..n a partir da ordem recebida.
    """
    name = (name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Nome do funil não pode estar vazio")

    client = db.query(models.Client).filter(models.Client.id == client_id, models.Client.active == True).first()
    if not client:
        raise HTTPException(status_code=400, detail="Cliente não encontrado")

    _validate_stage_names(stages)

    try:
        funnel = models.Funnel(client_id=client_id, name=name, description=(description or "").strip())
        db.add(funnel)
        db.flush()
        for position, stage in enumerate(stages, start=1):
            db.add(models.Stage(
                funnel_id=funnel.id,
                name=stage.name.strip(),
                position=position,
                color=stage.color or DEFAULT_STAGE_COLOR
            ))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Erro ao criar funil: {e}")
        raise HTTPException(status_code=500, detail="Erro ao criar funil")

    db.refresh(funnel)
    return funnel


def replace_stages(db: Session, funnel: models.Funnel, stages: List) -> None:
    """
    Substitui o conjunto de estágios do funil. Não faz commit.

    - mesmo id enviado mais de uma vez -> 400
    - estágio atual ausente da nova lista e ocupado por lead ativo -> 400
    - estágios mantidos (por id) são atualizados no lugar, preservando o id
    - leads ganhos/perdidos em estágios removidos vão para o primeiro estágio novo
    """
    _validate_stage_names(stages)

    sent_ids = [s.id for s in stages if s.id is not None]
    if len(sent_ids) != len(set(sent_ids)):
        raise HTTPException(status_code=400, detail="Estágio repetido na lista de estágios")

    current = {s.id: s for s in db.query(models.Stage).filter(models.Stage.funnel_id == funnel.id).all()}
    kept_ids = {s.id for s in stages if s.id is not None and s.id in current}

    removed_ids = [stage_id for stage_id in current if stage_id not in kept_ids]
    for stage_id in removed_ids:
        if count_active_leads(db, stage_id=stage_id) > 0:
            raise HTTPException(status_code=400, detail="Não é possível remover estágio que possui leads ativos")

    ordered: List[models.Stage] = []
    for position, stage_in in enumerate(stages, start=1):
        color = stage_in.color or DEFAULT_STAGE_COLOR
        if stage_in.id in kept_ids:
            stage = current[stage_in.id]
            stage.name = stage_in.name.strip()
            stage.position = position
            stage.color = color
        else:
            stage = models.Stage(funnel_id=funnel.id, name=stage_in.name.strip(), position=position, color=color)
            db.add(stage)
        ordered.append(stage)
    db.flush()

    if removed_ids:
        target_id = ordered[0].id
        moved = db.query(models.Lead).filter(
            models.Lead.stage_id.in_(removed_ids)
        ).update({models.Lead.stage_id: target_id}, synchronize_session=False)
        if moved:
            logger.info(f"↪️ {moved} lead(s) encerrados movidos para o estágio {target_id} do funil {funnel.id}")
        db.query(models.Stage).filter(models.Stage.id.in_(removed_ids)).delete(synchronize_session=False)

    db.expire(funnel, ["stages"])


def serialize_stage(stage: models.Stage) -> dict:
    return {
        "id": stage.id,
        "funnel_id": stage.funnel_id,
        "name": stage.name,
        "position": stage.position,
        "color": stage.color,
    }


def serialize_funnel(db: Session, funnel: models.Funnel) -> dict:
    stages = db.query(models.Stage).filter(
        models.Stage.funnel_id == funnel.id
    ).order_by(models.Stage.position.asc()).all()
    return {
        "id": funnel.id,
        "client_id": funnel.client_id,
        "client_name": funnel.client.name if funnel.client else None,
        "name": funnel.name,
        "description": funnel.description,
        "active": funnel.active,
        "created_at": funnel.created_at,
        "leads_count": count_active_leads(db, funnel_id=funnel.id),
        "stages_count": len(stages),
        "stages": [serialize_stage(s) for s in stages],
    }
