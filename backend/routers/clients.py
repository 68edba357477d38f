from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.deps import get_db
from core.permissions import require_admin
from core.responses import success_response
from core.logger import setup_logger
from models import Client, Funnel, Lead, User
from schemas import ClientCreate, ClientUpdate
from services import funnel_service
from websocket_manager import manager

logger = setup_logger(__name__)

router = APIRouter(prefix="/clients", tags=["Clients"])


def _count_by_client(db: Session, column, *filters) -> dict:
    rows = db.query(column, func.count()).filter(*filters).group_by(column).all()
    return {client_id: count for client_id, count in rows}


def serialize_client(client: Client, funnels_count=0, leads_count=0, users_count=0) -> dict:
    return {
        "id": client.id,
        "name": client.name,
        "email": client.email,
        "phone": client.phone,
        "active": client.active,
        "created_at": client.created_at,
        "updated_at": client.updated_at,
        "funnels_count": funnels_count,
        "leads_count": leads_count,
        "users_count": users_count,
    }


def _get_active_client(db: Session, client_id: int) -> Client:
    client = db.query(Client).filter(Client.id == client_id, Client.active == True).first()
    if not client:
        raise HTTPException(status_code=404, detail="Cliente não encontrado")
    return client


def _normalize_email(email) -> str:
    return (email or "").strip().lower()


def _ensure_unique_email(db: Session, email: str, exclude_id: int = None):
    """Email único entre clientes ativos, sem diferenciar maiúsculas"""
    if not email:
        return
    query = db.query(Client).filter(func.lower(Client.email) == email, Client.active == True)
    if exclude_id is not None:
        query = query.filter(Client.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=400, detail="Já existe um cliente com este email")


@router.get("", summary="Listar clientes")
def list_clients(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Lista os clientes ativos (apenas admin), com contagem de
    funis ativos, leads ativos e usuários ativos.
    """
    clients = db.query(Client).filter(Client.active == True).order_by(
        Client.created_at.desc(), Client.id.desc()
    ).all()

    funnels = _count_by_client(db, Funnel.client_id, Funnel.active == True)
    leads = _count_by_client(db, Lead.client_id, Lead.status == "active")
    users = _count_by_client(db, User.client_id, User.active == True)

    return success_response([
        serialize_client(c, funnels.get(c.id, 0), leads.get(c.id, 0), users.get(c.id, 0))
        for c in clients
    ])


@router.get("/{client_id}", summary="Obter cliente")
def read_client(
    client_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    client = _get_active_client(db, client_id)
    funnels = _count_by_client(db, Funnel.client_id, Funnel.active == True, Funnel.client_id == client.id)
    leads = _count_by_client(db, Lead.client_id, Lead.status == "active", Lead.client_id == client.id)
    users = _count_by_client(db, User.client_id, User.active == True, User.client_id == client.id)
    return success_response(serialize_client(
        client, funnels.get(client.id, 0), leads.get(client.id, 0), users.get(client.id, 0)
    ))


@router.post("", summary="Criar cliente", status_code=status.HTTP_201_CREATED)
def create_client(
    client_data: ClientCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Cria um novo cliente já com o funil padrão (5 estágios) e as origens padrão.
    """
    name = (client_data.name or "").strip()
    email = _normalize_email(client_data.email)
    phone = (client_data.phone or "").strip()

    if not name:
        raise HTTPException(status_code=400, detail="Nome do cliente não pode estar vazio")
    _ensure_unique_email(db, email)

    new_client = Client(name=name, email=email, phone=phone)
    db.add(new_client)
    try:
        db.flush()
        funnel = funnel_service.seed_client_defaults(db, new_client)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Erro ao criar cliente: {e}")
        raise HTTPException(status_code=500, detail="Erro ao criar cliente")

    db.refresh(new_client)
    logger.info(f"🏢 Cliente criado: {new_client.id} - {new_client.name} (funil padrão {funnel.id})")
    background_tasks.add_task(manager.notify, "client_updated", {"id": new_client.id})
    return success_response({"id": new_client.id}, "Cliente criado com sucesso", status_code=status.HTTP_201_CREATED)


@router.put("/{client_id}", summary="Atualizar cliente")
def update_client(
    client_id: int,
    client_data: ClientUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Atualização parcial: só os campos enviados são regravados.
    """
    client = _get_active_client(db, client_id)
    fields = {k: v.strip() for k, v in client_data.model_dump(exclude_unset=True).items() if v is not None}

    if not fields:
        raise HTTPException(status_code=400, detail="Nenhum campo para atualizar foi fornecido")
    if "name" in fields and not fields["name"]:
        raise HTTPException(status_code=400, detail="Nome do cliente não pode estar vazio")
    if "email" in fields:
        fields["email"] = _normalize_email(fields["email"])
        _ensure_unique_email(db, fields["email"], exclude_id=client.id)

    for field, value in fields.items():
        setattr(client, field, value)
    db.commit()
    db.refresh(client)

    background_tasks.add_task(manager.notify, "client_updated", {"id": client.id})
    return success_response(serialize_client(client), "Cliente atualizado com sucesso")


@router.delete("/{client_id}", summary="Remover cliente")
def delete_client(
    client_id: int,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Soft delete (active = False) do cliente, dos seus usuários e dos seus funis.
    Recusado se o cliente ainda tiver leads ativos.
    """
    client = _get_active_client(db, client_id)

    if funnel_service.count_active_leads(db, client_id=client.id) > 0:
        raise HTTPException(status_code=400, detail="Não é possível remover cliente que possui leads ativos")

    try:
        client.active = False
        db.query(User).filter(User.client_id == client.id).update({User.active: False}, synchronize_session=False)
        db.query(Funnel).filter(Funnel.client_id == client.id).update({Funnel.active: False}, synchronize_session=False)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Erro ao remover cliente {client_id}: {e}")
        raise HTTPException(status_code=500, detail="Erro ao remover cliente")

    logger.info(f"🗑️ Cliente {client_id} desativado por {current_user.email}")
    background_tasks.add_task(manager.notify, "client_updated", {"id": client_id, "active": False})
    return success_response(message="Cliente removido com sucesso")
