from pydantic import BaseModel, Field
from typing import List, Optional

# --- Auth ---

class LoginRequest(BaseModel):
    email: str = Field(..., description="Email do usuário", example="admin@crm.com")
    password: str = Field(..., description="Senha em texto puro", example="admin123")

class Token(BaseModel):
    access_token: str
    token_type: str

class PasswordChange(BaseModel):
    current_password: str = Field(..., description="Senha atual")
    new_password: str = Field(..., description="Nova senha (mínimo 6 caracteres)")

class UserCreate(BaseModel):
    name: Optional[str] = None
    email: str
    password: str
    role: Optional[str] = Field("client", description="admin ou client")
    client_id: Optional[int] = Field(None, description="Obrigatório para usuários com role=client")

class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    client_id: Optional[int] = None
    active: Optional[bool] = None

# --- Clients ---

class ClientCreate(BaseModel):
    name: str = Field(..., description="Nome da empresa", example="Empresa ABC")
    email: Optional[str] = Field(None, description="Email de contato (único entre clientes ativos)")
    phone: Optional[str] = None

class ClientUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

# --- Funnels / Stages ---

class StageIn(BaseModel):
    id: Optional[int] = Field(None, description="ID de um estágio existente a ser mantido")
    name: str = Field(..., description="Nome do estágio", example="Novo Lead")
    color: Optional[str] = Field(None, description="Cor em hex", example="#ef4444")

class FunnelCreate(BaseModel):
    client_id: int = Field(..., description="Cliente dono do funil")
    name: str = Field(..., description="Nome do funil", example="Funil Principal")
    description: Optional[str] = None
    stages: List[StageIn] = Field(default_factory=list, description="Estágios na ordem do pipeline")

class FunnelUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    stages: Optional[List[StageIn]] = Field(None, description="Se enviado, substitui o conjunto de estágios")

# --- Leads ---

class LeadCreate(BaseModel):
    name: str = Field(..., description="Nome do lead", example="Maria Souza")
    funnel_id: int = Field(..., description="Funil do lead (entra no primeiro estágio)")
    client_id: Optional[int] = Field(None, description="Obrigatório para admin; ignorado para clientes")
    email: Optional[str] = ""
    phone: Optional[str] = ""
    source: Optional[str] = Field("", description="Origem do lead", example="Google Ads")
    value: Optional[float] = 0
    notes: Optional[str] = ""

class LeadUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    source: Optional[str] = None
    value: Optional[float] = None
    notes: Optional[str] = None
    status: Optional[str] = Field(None, description="active, won ou lost")

class StageMove(BaseModel):
    stage_id: int = Field(..., description="Estágio de destino (deve pertencer ao funil do lead)")

# --- Origins ---

class OriginCreate(BaseModel):
    name: str
    color: Optional[str] = "#3b82f6"
    client_id: Optional[int] = None

class OriginUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None

# --- Webhooks ---

class WebhookCreate(BaseModel):
    url: str = Field(..., description="URL que receberá o POST", example="https://n8n.exemplo.com/webhook/crm")
    events: List[str] = Field(..., description="Eventos assinados", example=["lead_created", "stage_changed"])
    client_id: Optional[int] = None
    funnel_id: Optional[int] = Field(None, description="Vazio = todos os funis do cliente")
    active: Optional[bool] = True

class WebhookUpdate(BaseModel):
    url: Optional[str] = None
    funnel_id: Optional[int] = None
    events: Optional[List[str]] = None
    active: Optional[bool] = None

# --- Settings ---

class BrandingUpdate(BaseModel):
    crm_name: Optional[str] = None
    logo_url: Optional[str] = None
