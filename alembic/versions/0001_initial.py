"""initial schema: users, clients, billing, tasks, notifications, ai reports

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("firm_name", sa.String(), nullable=False, server_default="JZF Contabilidade"),
        sa.Column("firm_cnpj", sa.String(), nullable=True),
        sa.Column("pix_key", sa.String(), nullable=True),
        sa.Column("payment_link", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="Cliente"),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("home_client_id", sa.String(), nullable=True),
        sa.Column("can_manage_clients", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_manage_documents", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_manage_billing", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_manage_admins", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_manage_settings", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_view_reports", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_view_dashboard", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_manage_tasks", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )

    op.create_table(
        "clients",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("company", sa.String(), nullable=False),
        sa.Column("cnpj", sa.String(), nullable=True, unique=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("tax_regime", sa.String(), nullable=False, server_default="SimplesNacional"),
        sa.Column("status", sa.String(), nullable=False, server_default="Ativo"),
        sa.Column("cnaes", sa.JSON(), nullable=False),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("business_description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
    )

    op.create_table(
        "user_clients",
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("client_id", sa.String(), sa.ForeignKey("clients.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "invoices",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("client_id", sa.String(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="Pendente"),
        sa.Column("payment_methods", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_invoices_client_id", "invoices", ["client_id"])

    with op.batch_alter_table("users") as batch_op:
        batch_op.create_foreign_key(
            "fk_users_home_client_id", "clients", ["home_client_id"], ["id"], ondelete="SET NULL"
        )
        batch_op.create_index("ix_users_home_client_id", ["home_client_id"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("client_id", sa.String(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="Pendente"),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("recurrence", sa.String(), nullable=False, server_default="Unica"),
        sa.Column("previous_task_id", sa.String(), sa.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_tasks_client_id", "tasks", ["client_id"])
    op.create_index("ix_tasks_previous_task_id", "tasks", ["previous_task_id"])

    op.create_table(
        "task_template_sets",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
    )

    op.create_table(
        "task_template_items",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("template_set_id", sa.String(), sa.ForeignKey("task_template_sets.id"), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("recurrence", sa.String(), nullable=False, server_default="Mensal"),
        sa.Column("due_day", sa.Integer(), nullable=True),
    )

    op.create_table(
        "app_notifications",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("link", sa.String(), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("dedupe_key", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
    )
    op.create_index("ix_app_notifications_user_id", "app_notifications", ["user_id"])
    op.create_index("ix_app_notifications_dedupe_key", "app_notifications", ["dedupe_key"])

    op.create_table(
        "opportunities",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("client_id", sa.String(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("submission_deadline", sa.Date(), nullable=True),
        sa.Column("date_found", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.UniqueConstraint("client_id", "title", "source", name="uq_opportunity_client_title_source"),
    )
    op.create_index("ix_opportunities_client_id", "opportunities", ["client_id"])

    op.create_table(
        "compliance_findings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("client_id", sa.String(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=True),
        sa.Column("date_checked", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
    )
    op.create_index("ix_compliance_findings_client_id", "compliance_findings", ["client_id"])


def downgrade() -> None:
    op.drop_index("ix_compliance_findings_client_id", table_name="compliance_findings")
    op.drop_table("compliance_findings")
    op.drop_index("ix_opportunities_client_id", table_name="opportunities")
    op.drop_table("opportunities")
    op.drop_index("ix_app_notifications_dedupe_key", table_name="app_notifications")
    op.drop_index("ix_app_notifications_user_id", table_name="app_notifications")
    op.drop_table("app_notifications")
    op.drop_table("task_template_items")
    op.drop_table("task_template_sets")
    op.drop_index("ix_tasks_previous_task_id", table_name="tasks")
    op.drop_index("ix_tasks_client_id", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_invoices_client_id", table_name="invoices")
    op.drop_table("invoices")
    with op.batch_alter_table("users") as batch_op:
        batch_op.drop_index("ix_users_home_client_id")
        batch_op.drop_constraint("fk_users_home_client_id", type_="foreignkey")
    op.drop_table("user_clients")
    op.drop_table("clients")
    op.drop_table("users")
    op.drop_table("settings")
