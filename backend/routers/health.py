from fastapi import APIRouter, Depends, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from core.deps import get_db
from core.logger import setup_logger
from core.responses import success_response, error_response
from database import database_label

logger = setup_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_check(db: Session = Depends(get_db)):
    """Verifica a conexão com o banco de dados."""
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"❌ Health check: banco indisponível: {e}")
        return error_response("Banco de dados indisponível", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return success_response({"status": "online", "database": database_label()})
