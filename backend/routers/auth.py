from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from models import User, Client
from schemas import LoginRequest, PasswordChange, Token, UserCreate, UserUpdate
from core.security import (
    LOGIN_RATE_LIMIT, MIN_PASSWORD_LENGTH, create_access_token, get_password_hash, limiter, verify_password
)
from core.deps import get_current_user, get_db
from core.permissions import ROLE_CLIENT, ROLES, require_admin
from core.responses import success_response
from core.logger import logger
from websocket_manager import manager

router = APIRouter(prefix="/auth", tags=["Authentication"])


def serialize_user(user: User) -> dict:
    """Dados públicos do usuário (nunca inclui o hash da senha)"""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "client_id": user.client_id,
        "client_name": user.client.name if user.client else None,
        "active": user.active,
        "created_at": user.created_at,
    }


def authenticate(db: Session, email: str, password: str) -> User:
    email = (email or "").strip()
    if not email or not password:
        raise HTTPException(status_code=400, detail="Email e senha são obrigatórios")

    user = db.query(User).filter(User.email == email, User.active == True).first()
    if not user or not verify_password(password, user.hashed_password):
        logger.warning(f"🔐 Login recusado para: {email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Email ou senha inválidos",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def issue_token(user: User) -> str:
    return create_access_token(data={
        "sub": user.email,
        "user_id": user.id,
        "name": user.name,
        "role": user.role,
        "client_id": user.client_id,
        "client_name": user.client.name if user.client else None,
    })


@router.post("", summary="Login")
@limiter.limit(LOGIN_RATE_LIMIT)
def login(request: Request, credentials: LoginRequest, db: Session = Depends(get_db)):
    """
    Autentica via email e senha (JSON).
    Retorna o **token JWT** para o header `Authorization: Bearer <token>` e os dados do usuário.
    """
    user = authenticate(db, credentials.email, credentials.password)
    logger.info(f"✅ Login realizado: {user.email} ({user.role})")
    return success_response(
        {"token": issue_token(user), "user": serialize_user(user)},
        "Login realizado com sucesso"
    )


@router.post("/token", response_model=Token, summary="Login via formulário OAuth2")
@limiter.limit(LOGIN_RATE_LIMIT)
def login_for_access_token(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """Mesmo login, no formato OAuth2 (username = email) usado pelo /docs."""
    user = authenticate(db, form_data.username, form_data.password)
    return {"access_token": issue_token(user), "token_type": "bearer"}


@router.get("", summary="Obter Meu Perfil")
def read_users_me(current_user: User = Depends(get_current_user)):
    return success_response(serialize_user(current_user))


@router.put("/password", summary="Alterar Minha Senha")
def change_password(
    data: PasswordChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if not verify_password(data.current_password, current_user.hashed_password):
        raise HTTPException(status_code=400, detail="Senha atual incorreta")
    if len(data.new_password or "") < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"A nova senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres")

    current_user.hashed_password = get_password_hash(data.new_password)
    db.commit()
    logger.info(f"🔑 Senha alterada: {current_user.email}")
    return success_response(message="Senha alterada com sucesso")


# --- Gestão de usuários (admin) ---

def _validate_role_and_client(db: Session, role: str, client_id):
    if role not in ROLES:
        raise HTTPException(status_code=400, detail=f"Perfil inválido: {role}")
    if role == ROLE_CLIENT:
        if not client_id:
            raise HTTPException(status_code=400, detail="Cliente é obrigatório para usuários do tipo client")
        client = db.query(Client).filter(Client.id == client_id, Client.active == True).first()
        if not client:
            raise HTTPException(status_code=400, detail="Cliente não encontrado")


@router.get("/users", summary="Listar Usuários")
def list_users(db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    users = db.query(User).filter(User.active == True).order_by(User.id.asc()).all()
    return success_response([serialize_user(u) for u in users])


@router.post("/users", summary="Registrar Novo Usuário", status_code=status.HTTP_201_CREATED)
def register_user(
    user_in: UserCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    email = (user_in.email or "").strip()
    if not email or not user_in.password:
        raise HTTPException(status_code=400, detail="Email e senha são obrigatórios")
    if len(user_in.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"A senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres")

    role = user_in.role or ROLE_CLIENT
    _validate_role_and_client(db, role, user_in.client_id)

    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=400, detail="Este email já está cadastrado")

    new_user = User(
        name=(user_in.name or "").strip() or None,
        email=email,
        hashed_password=get_password_hash(user_in.password),
        role=role,
        client_id=user_in.client_id if role == ROLE_CLIENT else None,
        active=True
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)
    logger.info(f"👤 Usuário criado: {new_user.email} ({new_user.role}) por {current_user.email}")

    data = serialize_user(new_user)
    background_tasks.add_task(manager.notify, "user_created", data)
    return success_response({"id": new_user.id}, "Usuário criado com sucesso", status_code=status.HTTP_201_CREATED)


@router.put("/users/{user_id}", summary="Atualizar Usuário")
def update_user(
    user_id: int,
    user_in: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="Usuário não encontrado")

    fields = user_in.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="Nenhum campo para atualizar foi fornecido")

    if user.id == current_user.id and (fields.get("role") not in (None, user.role) or fields.get("active") is False):
        raise HTTPException(status_code=400, detail="Você não pode rebaixar ou desativar sua própria conta")

    if fields.get("email") and fields["email"].strip() != user.email:
        if db.query(User).filter(User.email == fields["email"].strip()).first():
            raise HTTPException(status_code=400, detail="Este email já está em uso")
        user.email = fields["email"].strip()

    if fields.get("role") or "client_id" in fields:
        role = fields.get("role") or user.role
        client_id = fields.get("client_id", user.client_id)
        _validate_role_and_client(db, role, client_id)
        user.role = role
        user.client_id = client_id if role == ROLE_CLIENT else None

    if fields.get("name") is not None:
        user.name = fields["name"].strip() or None
    if fields.get("password"):
        if len(fields["password"]) < MIN_PASSWORD_LENGTH:
            raise HTTPException(status_code=400, detail=f"A senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres")
        user.hashed_password = get_password_hash(fields["password"])
    if fields.get("active") is not None:
        user.active = fields["active"]

    db.commit()
    db.refresh(user)
    return success_response(serialize_user(user), "Usuário atualizado com sucesso")
