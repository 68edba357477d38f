from datetime import date
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

import models, schemas
from core.deps import get_db, get_current_user
from core.responses import success_response
from services import lead_service
from services.lead_service import serialize_lead
from websocket_manager import manager

router = APIRouter(prefix="/leads", tags=["Leads"])


@router.get("", summary="Listar leads")
def list_leads(
    client_id: Optional[int] = None,
    funnel_id: Optional[int] = None,
    status: Optional[str] = "active",
    source: Optional[str] = None,
    search: Optional[str] = None,
    created_from: Optional[date] = None,
    created_to: Optional[date] = None,
    updated_from: Optional[date] = None,
    updated_to: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    """
    Leads com nome do funil, estágio e cliente, mais recentes primeiro.

    - **status**: active (padrão), won, lost ou `all`.
    - **search**: busca em nome, email e telefone.
    - **created_from/created_to/updated_from/updated_to**: datas inclusivas (AAAA-MM-DD).
    """
    leads = lead_service.list_leads(
        db, current_user,
        client_id=client_id, funnel_id=funnel_id, status=status, source=source, search=search,
        created_from=created_from, created_to=created_to,
        updated_from=updated_from, updated_to=updated_to
    )
    return success_response([serialize_lead(l) for l in leads])


@router.get("/{lead_id}", summary="Obter lead")
def read_lead(
    lead_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    lead = lead_service.get_lead_for_user(db, lead_id, current_user)
    return success_response(serialize_lead(lead))


@router.post("", summary="Criar lead", status_code=status.HTTP_201_CREATED)
def create_lead(
    data: schemas.LeadCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    """
    Cria o lead no primeiro estágio do funil e dispara `lead_created`.
    """
    lead = lead_service.create_lead(db, current_user, data)
    background_tasks.add_task(manager.notify, "lead_created", serialize_lead(lead))
    return success_response({"id": lead.id}, "Lead criado com sucesso", status_code=status.HTTP_201_CREATED)


@router.put("/{lead_id}/stage", summary="Mover lead de estágio")
def update_lead_stage(
    lead_id: int,
    data: schemas.StageMove,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    """
    Move o lead (drag & drop do kanban) para outro estágio do mesmo funil.
    Dispara `stage_changed` com os nomes do estágio anterior e do novo.
    """
    lead, moved = lead_service.move_lead_stage(db, current_user, lead_id, data.stage_id)
    if not moved:
        return success_response(message="Lead já está neste estágio")

    background_tasks.add_task(manager.notify, "stage_changed", serialize_lead(lead))
    return success_response(serialize_lead(lead), "Estágio do lead atualizado com sucesso")


@router.put("/{lead_id}", summary="Atualizar lead")
def update_lead(
    lead_id: int,
    data: schemas.LeadUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    """
    Atualização parcial. Mudança de status dispara `lead_won`/`lead_lost`;
    reabrir (status=active) e demais alterações disparam `lead_updated`.
    """
    lead = lead_service.update_lead(db, current_user, lead_id, data)
    background_tasks.add_task(manager.notify, "lead_updated", serialize_lead(lead))
    return success_response(serialize_lead(lead), "Lead atualizado com sucesso")


@router.delete("/{lead_id}", summary="Remover lead")
def delete_lead(
    lead_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    lead_service.delete_lead(db, current_user, lead_id)
    background_tasks.add_task(manager.notify, "lead_deleted", {"id": lead_id})
    return success_response(message="Lead removido com sucesso")
