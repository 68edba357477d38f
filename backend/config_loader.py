import os
from typing import Optional
from sqlalchemy.orm import Session
from models import AppConfig
from core.logger import setup_logger

logger = setup_logger(__name__)

# Chaves suportadas e seus padrões (ambiente > padrão)
SETTINGS_DEFAULTS = {
    "CRM_NAME": "CRM System",
    "CRM_LOGO_URL": "",
}


def get_settings(db: Session, client_id: Optional[int] = None) -> dict:
    """
    Recupera as configurações do sistema, priorizando o banco de dados.
    Se não houver valor no banco, usa a variável de ambiente e depois o padrão.
    client_id=None lê as configurações globais.
    """
    settings = {}
    db_map = {}
    try:
        query = db.query(AppConfig)
        if client_id:
            query = query.filter(AppConfig.client_id == client_id)
        else:
            query = query.filter(AppConfig.client_id.is_(None))
        db_map = {cfg.key: cfg.value for cfg in query.all()}
    except Exception as e:
        # Fallback para env vars em caso de erro no DB
        logger.error(f"Erro ao carregar configurações do banco: {e}")

    for key, default in SETTINGS_DEFAULTS.items():
        # Prioridade: Banco > Variável de Ambiente > Padrão
        value = db_map.get(key)
        if value is None:
            value = os.getenv(key, default)
        settings[key] = value

    return settings


def set_setting(db: Session, key: str, value: str, client_id: Optional[int] = None) -> None:
    """Upsert de uma configuração. Não faz commit."""
    if key not in SETTINGS_DEFAULTS:
        raise KeyError(key)
    query = db.query(AppConfig).filter(AppConfig.key == key)
    if client_id:
        query = query.filter(AppConfig.client_id == client_id)
    else:
        query = query.filter(AppConfig.client_id.is_(None))
    cfg = query.first()
    if cfg:
        cfg.value = value
    else:
        db.add(AppConfig(client_id=client_id, key=key, value=value))
