import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

ROLE_ADMIN_GERAL = "AdminGeral"
ROLE_ADMIN = "Admin"
ROLE_CLIENT = "Cliente"

CLIENT_ACTIVE = "Ativo"
CLIENT_INACTIVE = "Inativo"

INVOICE_PENDING = "Pendente"
INVOICE_OVERDUE = "Atrasado"
INVOICE_PAID = "Pago"
INVOICE_CANCELED = "Cancelado"
INVOICE_OPEN_STATUSES = (INVOICE_PENDING, INVOICE_OVERDUE)

TASK_PENDING = "Pendente"
TASK_DONE = "Concluida"

TAX_REGIMES = ("SimplesNacional", "LucroPresumido", "LucroReal")
RECURRENCES = ("Unica", "Mensal", "Trimestral", "Anual")


def _uuid() -> str:
    return str(uuid.uuid4())


user_clients = Table(
    "user_clients",
    Base.metadata,
    Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("client_id", String, ForeignKey("clients.id", ondelete="CASCADE"), primary_key=True),
)


class AppSettings(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, default=1)
    firm_name = Column(String, nullable=False, default="JZF Contabilidade")
    firm_cnpj = Column(String, nullable=True)
    pix_key = Column(String, nullable=True)
    payment_link = Column(String, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("username", name="uq_users_username"),)

    id = Column(String, primary_key=True, default=_uuid)
    username = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    role = Column(String, nullable=False, default=ROLE_CLIENT)
    status = Column(String, nullable=False, default="active")
    # empresa de origem do login Cliente; acessos extras ficam so em user_clients
    home_client_id = Column(
        String, ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True
    )
    can_manage_clients = Column(Boolean, nullable=False, default=False)
    can_manage_documents = Column(Boolean, nullable=False, default=False)
    can_manage_billing = Column(Boolean, nullable=False, default=False)
    can_manage_admins = Column(Boolean, nullable=False, default=False)
    can_manage_settings = Column(Boolean, nullable=False, default=False)
    can_view_reports = Column(Boolean, nullable=False, default=False)
    can_view_dashboard = Column(Boolean, nullable=False, default=False)
    can_manage_tasks = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    clients = relationship("Client", secondary=user_clients, back_populates="users")
    notifications = relationship(
        "AppNotification", back_populates="user", cascade="all, delete-orphan"
    )


class Client(Base):
    __tablename__ = "clients"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    company = Column(String, nullable=False)
    cnpj = Column(String, nullable=True, unique=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    tax_regime = Column(String, nullable=False, default="SimplesNacional")
    status = Column(String, nullable=False, default=CLIENT_ACTIVE)
    cnaes = Column(JSON, nullable=False, default=list)
    keywords = Column(JSON, nullable=False, default=list)
    business_description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    users = relationship("User", secondary=user_clients, back_populates="clients")
    invoices = relationship("Invoice", back_populates="client", cascade="all, delete-orphan")
    tasks = relationship("Task", back_populates="client", cascade="all, delete-orphan")
    opportunities = relationship("Opportunity", back_populates="client", cascade="all, delete-orphan")
    compliance_findings = relationship(
        "ComplianceFinding", back_populates="client", cascade="all, delete-orphan"
    )


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("clients.id"), nullable=False, index=True)
    description = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, default=INVOICE_PENDING)
    payment_methods = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    paid_at = Column(DateTime, nullable=True)

    client = relationship("Client", back_populates="invoices")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("clients.id"), nullable=False, index=True)
    description = Column(String, nullable=False)
    status = Column(String, nullable=False, default=TASK_PENDING)
    due_date = Column(Date, nullable=True)
    recurrence = Column(String, nullable=False, default="Unica")
    previous_task_id = Column(
        String, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    client = relationship("Client", back_populates="tasks")


class TaskTemplateSet(Base):
    __tablename__ = "task_template_sets"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    items = relationship(
        "TaskTemplateItem", back_populates="template_set", cascade="all, delete-orphan"
    )


class TaskTemplateItem(Base):
    __tablename__ = "task_template_items"

    id = Column(String, primary_key=True, default=_uuid)
    template_set_id = Column(String, ForeignKey("task_template_sets.id"), nullable=False)
    description = Column(String, nullable=False)
    recurrence = Column(String, nullable=False, default="Mensal")
    due_day = Column(Integer, nullable=True)

    template_set = relationship("TaskTemplateSet", back_populates="items")


class AppNotification(Base):
    __tablename__ = "app_notifications"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    message = Column(String, nullable=False)
    link = Column(String, nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    dedupe_key = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="notifications")


class Opportunity(Base):
    __tablename__ = "opportunities"
    __table_args__ = (
        UniqueConstraint("client_id", "title", "source", name="uq_opportunity_client_title_source"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("clients.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String, nullable=False)
    source = Column(String, nullable=False)
    submission_deadline = Column(Date, nullable=True)
    date_found = Column(DateTime, default=datetime.utcnow, nullable=False)

    client = relationship("Client", back_populates="opportunities")


class ComplianceFinding(Base):
    __tablename__ = "compliance_findings"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("clients.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False)
    source = Column(String, nullable=True)
    date_checked = Column(DateTime, default=datetime.utcnow, nullable=False)

    client = relationship("Client", back_populates="compliance_findings")
