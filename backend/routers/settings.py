from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.deps import get_db
from core.permissions import require_admin
from core.responses import success_response
from core.logger import setup_logger
from config_loader import get_settings, set_setting
from models import User
from schemas import BrandingUpdate

logger = setup_logger(__name__)

router = APIRouter(prefix="/settings", tags=["Settings"])


def _branding(db: Session) -> dict:
    settings = get_settings(db)
    return {"crm_name": settings["CRM_NAME"], "logo_url": settings["CRM_LOGO_URL"]}


@router.get("/branding")
def get_branding(db: Session = Depends(get_db)):
    """
    Nome e logo do CRM para a tela de login (público).
    """
    return success_response(_branding(db))


@router.put("/branding")
def update_branding(
    data: BrandingUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    fields = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    if not fields:
        raise HTTPException(status_code=400, detail="Nenhum campo para atualizar foi fornecido")

    if "crm_name" in fields:
        name = fields["crm_name"].strip()
        if not name:
            raise HTTPException(status_code=400, detail="Nome do CRM não pode estar vazio")
        set_setting(db, "CRM_NAME", name)
    if "logo_url" in fields:
        set_setting(db, "CRM_LOGO_URL", fields["logo_url"].strip())

    db.commit()
    logger.info(f"⚙️ Branding atualizado por {current_user.email}: {list(fields.keys())}")
    return success_response(_branding(db), "Configurações salvas com sucesso")
