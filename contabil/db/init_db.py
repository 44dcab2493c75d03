import logging

from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

from contabil.core.config import settings
from contabil.core.security import get_password_hash
from contabil.db import models
from contabil.db.session import SessionLocal

logger = logging.getLogger("contabil.db")

admin_username = "admin"
admin_email = "admin@jzf.com.br"


def ensure_missing_columns(engine) -> None:
    if engine.dialect.name != "sqlite":
        return
    inspector = inspect(engine)
    preparer = engine.dialect.identifier_preparer
    existing_tables = set(inspector.get_table_names())
    for table_name, table in models.Base.metadata.tables.items():
        if table_name not in existing_tables:
            continue
        existing_columns = {col["name"] for col in inspector.get_columns(table_name)}
        for column in table.columns:
            if column.name in existing_columns:
                continue
            col_type = column.type.compile(dialect=engine.dialect)
            with engine.begin() as connection:
                connection.execute(
                    text(
                        f"ALTER TABLE {preparer.quote(table_name)} "
                        f"ADD COLUMN {preparer.quote(column.name)} {col_type}"
                    )
                )


def seed_admin_and_settings(db: Session) -> models.User:
    admin = db.query(models.User).filter(models.User.username == admin_username).first()
    if not admin:
        admin = models.User(
            username=admin_username,
            password_hash=get_password_hash(settings.DEFAULT_ADMIN_PASSWORD),
            name="Admin Geral",
            email=admin_email,
            role=models.ROLE_ADMIN_GERAL,
            status="active",
            can_manage_clients=True,
            can_manage_documents=True,
            can_manage_billing=True,
            can_manage_admins=True,
            can_manage_settings=True,
            can_view_reports=True,
            can_view_dashboard=True,
            can_manage_tasks=True,
        )
        db.add(admin)
        logger.info("Created AdminGeral user: %s", admin_username)
    elif settings.RESET_DEFAULT_PASSWORDS:
        admin.password_hash = get_password_hash(settings.DEFAULT_ADMIN_PASSWORD)
        logger.info("Reset AdminGeral password: %s", admin_username)

    app_settings = db.query(models.AppSettings).filter(models.AppSettings.id == 1).first()
    if not app_settings:
        db.add(
            models.AppSettings(
                id=1,
                firm_name="JZF Contabilidade",
                pix_key="sua-chave-pix-aqui",
                payment_link="https://seu-link-de-pagamento.com",
            )
        )
    db.commit()
    db.refresh(admin)
    return admin


def backfill_home_clients(db: Session) -> int:
    """Link Cliente logins created before home_client_id existed.

    Only users with a single client in their access set are linked, and only
    when that client has no login of its own yet.
    """
    users = (
        db.query(models.User)
        .filter(models.User.role == models.ROLE_CLIENT, models.User.home_client_id.is_(None))
        .order_by(models.User.created_at)
        .all()
    )
    homed = {
        row[0]
        for row in db.query(models.User.home_client_id)
        .filter(models.User.home_client_id.isnot(None))
        .all()
    }
    linked = 0
    for user in users:
        if len(user.clients) != 1 or user.clients[0].id in homed:
            continue
        user.home_client_id = user.clients[0].id
        homed.add(user.home_client_id)
        linked += 1
    if linked:
        db.commit()
        logger.info("Linked %s client users to their home client", linked)
    return linked


def seed_initial_data() -> None:
    db: Session = SessionLocal()
    try:
        seed_admin_and_settings(db)
        backfill_home_clients(db)
    finally:
        db.close()
