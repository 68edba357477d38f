from typing import Optional
from fastapi import Depends, HTTPException, status
from core.deps import get_current_user
from models import User

ROLE_ADMIN = "admin"
ROLE_CLIENT = "client"
ROLES = (ROLE_ADMIN, ROLE_CLIENT)


def require_role(allowed_roles: list):
    def role_checker(current_user: User = Depends(get_current_user)):
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Acesso negado: privilégios de administrador necessários"
            )
        return current_user
    return role_checker


# Dependências específicas
require_admin = require_role([ROLE_ADMIN])


def is_admin(user: User) -> bool:
    return user.role == ROLE_ADMIN


def scoped_client_id(user: User, requested_client_id: Optional[int] = None) -> Optional[int]:
    """
    Cliente só enxerga os próprios dados: ignora o client_id pedido e usa o dele.
    Admin usa o client_id pedido (None = todos).
    """
    if is_admin(user):
        return requested_client_id
    return user.client_id
