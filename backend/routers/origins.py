from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from core.deps import get_db, get_current_user
from core.permissions import is_admin, scoped_client_id
from core.responses import success_response
from models import Client, Origin, User
from schemas import OriginCreate, OriginUpdate

router = APIRouter(prefix="/origins", tags=["Origins"])


def serialize_origin(origin: Origin) -> dict:
    return {
        "id": origin.id,
        "client_id": origin.client_id,
        "name": origin.name,
        "color": origin.color,
        "is_default": origin.is_default,
    }


def _get_origin_for_user(db: Session, origin_id: int, user: User) -> Origin:
    query = db.query(Origin).filter(Origin.id == origin_id)
    if not is_admin(user):
        query = query.filter(Origin.client_id == user.client_id)
    origin = query.first()
    if not origin:
        raise HTTPException(status_code=404, detail="Origem não encontrada")
    return origin


def _ensure_unique_name(db: Session, client_id: int, name: str, exclude_id: int = None):
    query = db.query(Origin).filter(Origin.client_id == client_id, Origin.name == name)
    if exclude_id is not None:
        query = query.filter(Origin.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=400, detail="Já existe uma origem com este nome")


@router.get("", summary="Listar origens")
def list_origins(
    client_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = db.query(Origin)
    client_id = scoped_client_id(current_user, client_id)
    if client_id:
        query = query.filter(Origin.client_id == client_id)
    origins = query.order_by(Origin.client_id.asc(), Origin.id.asc()).all()
    return success_response([serialize_origin(o) for o in origins])


@router.post("", summary="Criar origem", status_code=status.HTTP_201_CREATED)
def create_origin(
    data: OriginCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    name = (data.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Nome da origem não pode estar vazio")

    client_id = data.client_id if is_admin(current_user) else current_user.client_id
    if not client_id:
        raise HTTPException(status_code=400, detail="Cliente é obrigatório")
    if not db.query(Client).filter(Client.id == client_id, Client.active == True).first():
        raise HTTPException(status_code=400, detail="Cliente não encontrado")

    _ensure_unique_name(db, client_id, name)

    origin = Origin(client_id=client_id, name=name, color=data.color or "#3b82f6", is_default=False)
    db.add(origin)
    db.commit()
    db.refresh(origin)
    return success_response(serialize_origin(origin), "Origem criada com sucesso", status_code=status.HTTP_201_CREATED)


@router.put("/{origin_id}", summary="Atualizar origem")
def update_origin(
    origin_id: int,
    data: OriginUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    origin = _get_origin_for_user(db, origin_id, current_user)
    fields = {k: v.strip() for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    if not fields:
        raise HTTPException(status_code=400, detail="Nenhum campo para atualizar foi fornecido")

    if "name" in fields:
        if not fields["name"]:
            raise HTTPException(status_code=400, detail="Nome da origem não pode estar vazio")
        _ensure_unique_name(db, origin.client_id, fields["name"], exclude_id=origin.id)
        origin.name = fields["name"]
    if fields.get("color"):
        origin.color = fields["color"]

    db.commit()
    db.refresh(origin)
    return success_response(serialize_origin(origin), "Origem atualizada com sucesso")


@router.delete("/{origin_id}", summary="Remover origem")
def delete_origin(
    origin_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    origin = _get_origin_for_user(db, origin_id, current_user)
    if origin.is_default:
        raise HTTPException(status_code=400, detail="Origens padrão não podem ser removidas")
    db.delete(origin)
    db.commit()
    return success_response(message="Origem removida com sucesso")
