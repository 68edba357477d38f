from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.orm import Session
from database import SessionLocal
from models import User
from core.security import decode_access_token
from core.logger import logger


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Login via formulário OAuth2 (usado pelo botão "Authorize" do /docs).
# auto_error=False para devolvermos nossa própria mensagem de 401.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    """
    Valida o bearer token (assinatura + expiração) e recarrega o usuário.
    O usuário precisa continuar existindo e ativo.
    """
    if not token:
        raise _unauthorized("Token de autorização não fornecido")

    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        raise _unauthorized("Token JWT expirado")
    except JWTError as e:
        logger.warning(f"JWT Decode Error: {e}")
        raise _unauthorized("Token JWT inválido")

    user_id = payload.get("user_id")
    if user_id is None:
        logger.error("Token payload missing 'user_id'")
        raise _unauthorized("Token JWT inválido")

    user = db.query(User).filter(User.id == user_id, User.active == True).first()
    if user is None:
        logger.warning(f"Usuário do token não encontrado ou inativo: {user_id}")
        raise _unauthorized("Usuário não encontrado ou inativo")
    return user
