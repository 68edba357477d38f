from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

import models, schemas
from core.deps import get_db, get_current_user
from core.permissions import require_admin, scoped_client_id
from core.responses import success_response
from core.logger import setup_logger
from services import funnel_service
from websocket_manager import manager

logger = setup_logger(__name__)

router = APIRouter(prefix="/funnels", tags=["Funnels"])


def _get_funnel_for_user(db: Session, funnel_id: int, user: models.User) -> models.Funnel:
    client_id = scoped_client_id(user)
    funnel = funnel_service.get_active_funnel(db, funnel_id, client_id)
    if not funnel:
        raise HTTPException(status_code=404, detail="Funil não encontrado")
    return funnel


@router.get("", summary="Listar funis")
def list_funnels(
    client_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    """
    Funis ativos com estágios ordenados e contagem de leads ativos.
    Clientes veem apenas os próprios funis; admin pode filtrar por `client_id`.
    """
    query = db.query(models.Funnel).join(models.Client).filter(
        models.Funnel.active == True,
        models.Client.active == True
    )
    client_id = scoped_client_id(current_user, client_id)
    if client_id:
        query = query.filter(models.Funnel.client_id == client_id)

    funnels = query.order_by(models.Funnel.created_at.desc(), models.Funnel.id.desc()).all()
    return success_response([funnel_service.serialize_funnel(db, f) for f in funnels])


@router.get("/{funnel_id}", summary="Obter detalhes de um funil")
def read_funnel(
    funnel_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    funnel = _get_funnel_for_user(db, funnel_id, current_user)
    return success_response(funnel_service.serialize_funnel(db, funnel))


@router.post("", summary="Criar novo funil", status_code=status.HTTP_201_CREATED)
def create_funnel(
    funnel: schemas.FunnelCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin)
):
    """
    Cria um funil com seus estágios (apenas admin).

    - **client_id**: cliente dono do funil (precisa estar ativo).
    - **stages**: lista ordenada; as posições são recalculadas a partir da ordem.
    """
    db_funnel = funnel_service.create_funnel(db, funnel.client_id, funnel.name, funnel.description, funnel.stages)
    logger.info(f"📊 Funil {db_funnel.id} criado para o cliente {db_funnel.client_id}")
    background_tasks.add_task(manager.notify, "funnel_updated", {"id": db_funnel.id})
    return success_response({"id": db_funnel.id}, "Funil criado com sucesso", status_code=status.HTTP_201_CREATED)


@router.put("/{funnel_id}", summary="Atualizar funil existente")
def update_funnel(
    funnel_id: int,
    funnel_update: schemas.FunnelUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin)
):
    """
    Atualiza nome/descrição e, se `stages` for enviado, substitui os estágios
    numa única transação. Estágios removidos não podem ter leads ativos.
    """
    db_funnel = _get_funnel_for_user(db, funnel_id, current_user)
    fields = funnel_update.model_dump(exclude_unset=True)

    if not any(v is not None for v in fields.values()):
        raise HTTPException(status_code=400, detail="Nenhum campo para atualizar foi fornecido")

    try:
        if fields.get("name") is not None:
            name = fields["name"].strip()
            if not name:
                raise HTTPException(status_code=400, detail="Nome do funil não pode estar vazio")
            db_funnel.name = name
        if fields.get("description") is not None:
            db_funnel.description = fields["description"].strip()
        if funnel_update.stages is not None:
            funnel_service.replace_stages(db, db_funnel, funnel_update.stages)
        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Erro ao atualizar funil {funnel_id}: {e}")
        raise HTTPException(status_code=500, detail="Erro ao atualizar funil")

    db.refresh(db_funnel)
    background_tasks.add_task(manager.notify, "funnel_updated", {"id": db_funnel.id})
    return success_response(funnel_service.serialize_funnel(db, db_funnel), "Funil atualizado com sucesso")


@router.delete("/{funnel_id}", summary="Excluir funil")
def delete_funnel(
    funnel_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin)
):
    """
    Soft delete do funil. Recusado se houver leads ativos nele.
    """
    db_funnel = _get_funnel_for_user(db, funnel_id, current_user)

    if funnel_service.count_active_leads(db, funnel_id=db_funnel.id) > 0:
        raise HTTPException(status_code=400, detail="Não é possível remover funil que possui leads ativos")

    db_funnel.active = False
    db.commit()
    logger.info(f"🗑️ Funil {funnel_id} desativado por {current_user.email}")
    background_tasks.add_task(manager.notify, "funnel_updated", {"id": funnel_id, "active": False})
    return success_response(message="Funil removido com sucesso")
