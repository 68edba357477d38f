from sqlalchemy import Column, Integer, String, Text, JSON, DateTime, ForeignKey, Boolean, Float, UniqueConstraint
from sqlalchemy.sql import func
from database import Base
from sqlalchemy.orm import relationship

LEAD_STATUSES = ("active", "won", "lost")

WEBHOOK_EVENTS = ("lead_created", "lead_updated", "stage_changed", "lead_won", "lead_lost")


class Client(Base):
    """Multi-tenancy: cada cliente tem seus próprios funis, leads, usuários e webhooks."""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, index=True, nullable=True)
    phone = Column(String, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    users = relationship("User", back_populates="client")
    funnels = relationship("Funnel", back_populates="client")
    leads = relationship("Lead", back_populates="client")
    origins = relationship("Origin", back_populates="client", cascade="all, delete-orphan")
    webhooks = relationship("Webhook", back_populates="client")
    configs = relationship("AppConfig", back_populates="client")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, default="client", nullable=False)  # admin, client
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    client = relationship("Client", back_populates="users")


class Funnel(Base):
    __tablename__ = "funnels"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    client = relationship("Client", back_populates="funnels")
    stages = relationship(
        "Stage",
        back_populates="funnel",
        order_by="Stage.position",
        cascade="all, delete-orphan"
    )
    leads = relationship("Lead", back_populates="funnel")


class Stage(Base):
    __tablename__ = "stages"

    id = Column(Integer, primary_key=True, index=True)
    funnel_id = Column(Integer, ForeignKey("funnels.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    position = Column(Integer, nullable=False)  # 1-based, contíguo por funil
    color = Column(String, default="#3b82f6")

    funnel = relationship("Funnel", back_populates="stages")


class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    funnel_id = Column(Integer, ForeignKey("funnels.id"), nullable=False, index=True)
    stage_id = Column(Integer, ForeignKey("stages.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, default="")
    email = Column(String, default="")
    source = Column(String, default="")
    value = Column(Float, default=0.0)
    notes = Column(Text, default="")
    status = Column(String, default="active", index=True)  # active, won, lost
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="leads")
    funnel = relationship("Funnel", back_populates="leads")
    stage = relationship("Stage")


class Origin(Base):
    """Origens de lead por cliente (Google Ads, Meta Ads, Indicação...)"""
    __tablename__ = "origins"
    __table_args__ = (UniqueConstraint("client_id", "name", name="uq_origin_client_name"),)

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    color = Column(String, default="#3b82f6")
    is_default = Column(Boolean, default=False)

    client = relationship("Client", back_populates="origins")


class Webhook(Base):
    __tablename__ = "webhooks"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    funnel_id = Column(Integer, ForeignKey("funnels.id"), nullable=True)  # NULL = todos os funis
    url = Column(String, nullable=False)
    events = Column(JSON, default=list)  # ["lead_created", "stage_changed", ...]
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    client = relationship("Client", back_populates="webhooks")
    funnel = relationship("Funnel")
    logs = relationship("WebhookLog", back_populates="webhook", cascade="all, delete-orphan")


class WebhookLog(Base):
    """Trilha de auditoria: uma linha por tentativa de envio (inclusive testes)"""
    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True, index=True)
    webhook_id = Column(Integer, ForeignKey("webhooks.id"), nullable=False, index=True)
    event_type = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    response_status = Column(Integer, nullable=True)
    response_body = Column(Text, nullable=True)  # corpo da resposta ou texto do erro
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    webhook = relationship("Webhook", back_populates="logs")


class AppConfig(Base):
    """
    Configurações dinâmicas do sistema (ex: nome e logo do CRM).
    client_id NULL = configuração global.
    """
    __tablename__ = "app_config"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    key = Column(String, index=True, nullable=False)
    value = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())

    client = relationship("Client", back_populates="configs")
