from typing import Dict, Iterable, Optional, Set
import json

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from core.logger import setup_logger

logger = setup_logger(__name__)

# Eventos de mudança enviados ao frontend (invalidação de cache)
CHANGE_EVENTS = (
    "lead_created",
    "lead_updated",
    "lead_deleted",
    "stage_changed",
    "funnel_updated",
    "client_updated",
    "webhook_updated",
    "user_created",
)


def parse_events(raw: Optional[str]) -> Set[str]:
    """
    "lead_created,stage_changed" -> {"lead_created", "stage_changed"}.
    Vazio = todos os eventos. Nomes desconhecidos são ignorados.
    """
    if not raw:
        return set()
    requested = {name.strip() for name in raw.split(",") if name.strip()}
    unknown = requested.difference(CHANGE_EVENTS)
    if unknown:
        logger.warning(f"⚠️ WS: eventos desconhecidos ignorados: {sorted(unknown)}")
    return requested.intersection(CHANGE_EVENTS)


class ConnectionManager:
    """
    Notificações de mudança para o frontend: depois de cada escrita o servidor
    envia {"event", "data"} e o cliente invalida o cache local.
    Cada conexão pode assinar só alguns eventos (conjunto vazio = todos).
    """

    def __init__(self):
        self.active_connections: Dict[WebSocket, Set[str]] = {}

    async def connect(self, websocket: WebSocket, events: Iterable[str] = ()):
        await websocket.accept()
        self.active_connections[websocket] = set(events)
        logger.info(f"🔌 WebSocket conectado ({', '.join(sorted(events)) or 'todos os eventos'}). Total: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket):
        if self.active_connections.pop(websocket, None) is not None:
            logger.info(f"🔌 WebSocket desconectado. Total: {len(self.active_connections)}")

    def subscribers(self, event: str):
        return [ws for ws, events in self.active_connections.items() if not events or event in events]

    async def notify(self, event: str, data: dict):
        """Envia {"event", "data"} às conexões que assinam o evento"""
        if event not in CHANGE_EVENTS:
            raise ValueError(f"Evento de mudança desconhecido: {event}")

        targets = self.subscribers(event)
        if not targets:
            return
        logger.info(f"📡 {event} para {len(targets)} cliente(s)")

        payload = json.dumps(jsonable_encoder({"event": event, "data": data}))
        for connection in targets:
            try:
                await connection.send_text(payload)
            except Exception as e:
                logger.warning(f"⚠️ Erro ao enviar WS (cliente caiu?): {e}")
                self.disconnect(connection)

manager = ConnectionManager()
