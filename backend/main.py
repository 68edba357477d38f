from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Request
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
load_dotenv()
import os
import time
import sentry_sdk

from database import engine, SessionLocal, database_label
import models

# Routers
from routers import auth, clients, funnels, leads, origins, webhooks, settings, health

from websocket_manager import manager, parse_events

# Security
from core.security import limiter, get_password_hash, verify_password
from core.permissions import ROLE_ADMIN
from core.exceptions import add_exception_handlers
from core.logger import logger
from slowapi.middleware import SlowAPIMiddleware

# Cria as tabelas (Postgres ou SQLite)
models.Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Funil CRM API",
    description="""
## 📊 Funil CRM API

Backend do CRM de funis de vendas multi-cliente.

### Funcionalidades
* **Clientes:** Contas isoladas, cada uma com seus usuários, funis e leads.
* **Funis e Estágios:** Pipelines ordenados com cores por estágio.
* **Leads:** Cadastro, filtros e movimentação entre estágios (Kanban).
* **Webhooks:** Notificação HTTP de eventos de lead com histórico de envios.

### Autenticação
Use `POST /api/auth` (JSON) ou `POST /api/auth/token` (formulário OAuth2) para obter o token.
    """,
    version="1.0.0",
    contact={
        "name": "Documentação Oficial",
        "url": "http://localhost:8000/docs",
    }
)

# Sentry
SENTRY_DSN = os.getenv("SENTRY_DSN")
if SENTRY_DSN:
    sentry_sdk.init(dsn=SENTRY_DSN, traces_sample_rate=1.0)

# Rate Limiter (limite padrão por IP + limites específicos por rota)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

# Envelope {success: false, error} para todos os erros
add_exception_handlers(app)

# Configuração CORS
default_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://localhost:8000"
]
env_origins = os.getenv("CORS_ORIGINS", "")
if env_origins:
    default_origins.extend([origin.strip() for origin in env_origins.split(",") if origin.strip()])

app.add_middleware(
    CORSMiddleware,
    allow_origins=default_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
logger.info(f"🔒 CORS origins enabled: {default_origins}")

# Include Routers
app.include_router(auth.router, prefix="/api")
app.include_router(clients.router, prefix="/api")
app.include_router(funnels.router, prefix="/api")
app.include_router(leads.router, prefix="/api")
app.include_router(origins.router, prefix="/api")
app.include_router(webhooks.router, prefix="/api")
app.include_router(settings.router, prefix="/api")
app.include_router(health.router, prefix="/api")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    # Ignora docs para não poluir
    if any(x in request.url.path for x in ["/docs", "/openapi.json", "/favicon.ico"]):
        return await call_next(request)

    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(f"🔍 [REQUEST] {request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f}ms)")
    return response


@app.on_event("startup")
async def startup_event():
    logger.info(f"🚀 Iniciando Funil CRM API... (banco: {database_label()})")
    seed_super_admin()


def seed_super_admin():
    """Garante que o administrador exista conforme o .env"""
    email = os.getenv("SUPER_ADMIN_EMAIL")
    password = os.getenv("SUPER_ADMIN_PASSWORD")

    # Limpar aspas que podem vir do Docker e espaços em branco
    if email: email = email.strip('"').strip("'").strip()
    if password: password = password.strip('"').strip("'").strip()

    if not email or not password:
        logger.warning("⚠️ SUPER_ADMIN_EMAIL ou SUPER_ADMIN_PASSWORD não configurados no .env")
        return

    db = SessionLocal()
    try:
        user = db.query(models.User).filter(models.User.email == email).first()

        if user:
            # Sincroniza a senha com o ENV para garantir acesso
            if not verify_password(password, user.hashed_password):
                logger.info(f"🔑 Senha do admin ({email}) desalinhada com o ENV. Atualizando...")
                user.hashed_password = get_password_hash(password)
            user.role = ROLE_ADMIN
            user.client_id = None
            user.active = True
        else:
            logger.info(f"🚀 Criando administrador: {email}")
            db.add(models.User(
                name="Administrador",
                email=email,
                hashed_password=get_password_hash(password),
                role=ROLE_ADMIN,
                active=True
            ))

        db.commit()
    except Exception as e:
        logger.error(f"❌ Erro ao realizar seed do administrador: {e}")
        db.rollback()
    finally:
        db.close()


# WebSocket: notificações de mudança (leads, funis, clientes...)
@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    origin = websocket.headers.get("origin")
    logger.info(f"🔌 Tentativa de conexão WS de origin: {origin}")
    # ?events=lead_created,stage_changed limita as notificações recebidas
    await manager.connect(websocket, parse_events(websocket.query_params.get("events")))
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)


@app.get("/")
def read_root():
    return {
        "message": "Funil CRM API",
        "docs": "/docs",
        "status": "online",
        "version": app.version,
    }
