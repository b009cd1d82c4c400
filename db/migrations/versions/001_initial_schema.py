"""Initial schema: crm, signals, health tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

_INTEGRATION_TYPE_CHECK = "type IN ('asaas', 'dom_pagamentos')"


def _id():
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True)


def _created_at():
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")
    )


def upgrade() -> None:
    for schema in ("crm", "signals", "health"):
        op.execute(f"CREATE SCHEMA IF NOT EXISTS {schema}")

    # ─── CRM Schema ──────────────────────────────────────────────────────────

    op.create_table(
        "agencies",
        _id(),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("analysis_day", sa.Integer, nullable=True),
        sa.Column("whatsapp_instance", sa.Text, nullable=True),
        sa.Column("whatsapp_number", sa.Text, nullable=True),
        sa.Column("llm_credentials_enc", sa.Text, nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "analysis_day IS NULL OR analysis_day BETWEEN 0 AND 6",
            name="ck_agency_analysis_day",
        ),
        schema="crm",
    )

    op.create_table(
        "agency_integrations",
        _id(),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("credentials_enc", sa.Text, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        _created_at(),
        sa.CheckConstraint(_INTEGRATION_TYPE_CHECK, name="ck_agency_integration_type"),
        sa.UniqueConstraint("agency_id", "type", name="uq_agency_integration_type"),
        sa.ForeignKeyConstraint(["agency_id"], ["crm.agencies.id"], name="fk_agency_integration_agency", ondelete="CASCADE"),
        schema="crm",
    )

    op.create_table(
        "team_members",
        _id(),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("phone", sa.Text, nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["agency_id"], ["crm.agencies.id"], name="fk_team_member_agency", ondelete="CASCADE"),
        schema="crm",
    )
    op.create_index("ix_team_members_agency_id", "team_members", ["agency_id"], schema="crm")

    op.create_table(
        "clients",
        _id(),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("short_name", sa.Text, nullable=True),
        sa.Column("segment", sa.Text, nullable=True),
        sa.Column("contract_start", sa.Date, nullable=True),
        sa.Column("contract_type", sa.Text, nullable=True),
        sa.Column("mrr_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("tcv_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("whatsapp_group_id", sa.Text, nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="active"),
        _created_at(),
        sa.CheckConstraint("status IN ('active', 'inactive', 'churned')", name="ck_client_status"),
        sa.ForeignKeyConstraint(["agency_id"], ["crm.agencies.id"], name="fk_client_agency", ondelete="CASCADE"),
        schema="crm",
    )
    op.create_index("ix_clients_agency_id", "clients", ["agency_id"], schema="crm")

    op.create_table(
        "client_integrations",
        _id(),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("customer_ref", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        _created_at(),
        sa.CheckConstraint(_INTEGRATION_TYPE_CHECK, name="ck_client_integration_type"),
        sa.UniqueConstraint("client_id", "type", "customer_ref", name="uq_client_integration_ref"),
        sa.ForeignKeyConstraint(["client_id"], ["crm.clients.id"], name="fk_client_integration_client", ondelete="CASCADE"),
        schema="crm",
    )
    op.create_index("ix_client_integrations_client_id", "client_integrations", ["client_id"], schema="crm")

    # ─── Signals Schema ──────────────────────────────────────────────────────

    op.create_table(
        "form_submissions",
        _id(),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("nps_score", sa.Integer, nullable=False),
        sa.Column("outcome_score", sa.Integer, nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("nps_score BETWEEN 0 AND 10", name="ck_form_nps_score"),
        sa.CheckConstraint("outcome_score BETWEEN 0 AND 10", name="ck_form_outcome_score"),
        sa.ForeignKeyConstraint(["client_id"], ["crm.clients.id"], name="fk_form_client", ondelete="CASCADE"),
        schema="signals",
    )
    op.create_index("ix_form_submissions_client_id", "form_submissions", ["client_id"], schema="signals")

    op.create_table(
        "whatsapp_messages",
        _id(),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("group_id", sa.Text, nullable=False),
        sa.Column("message_id", sa.Text, nullable=False),
        sa.Column("sender_name", sa.Text, nullable=True),
        sa.Column("sender_phone", sa.Text, nullable=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("is_from_me", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("timestamp_unix", sa.BigInteger, nullable=False),
        _created_at(),
        sa.UniqueConstraint("message_id", name="uq_whatsapp_message_id"),
        sa.ForeignKeyConstraint(["client_id"], ["crm.clients.id"], name="fk_whatsapp_client", ondelete="SET NULL"),
        schema="signals",
    )
    op.create_index(
        "ix_whatsapp_messages_group_ts", "whatsapp_messages", ["group_id", "timestamp_unix"], schema="signals"
    )

    # ─── Health Schema ───────────────────────────────────────────────────────

    op.create_table(
        "health_scores",
        _id(),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("score_total", sa.Integer, nullable=False),
        sa.Column("score_financial", sa.Integer, nullable=True),
        sa.Column("score_proximity", sa.Integer, nullable=True),
        sa.Column("score_outcome", sa.Integer, nullable=True),
        sa.Column("score_nps", sa.Integer, nullable=True),
        sa.Column("churn_risk", sa.Text, nullable=False),
        sa.Column("diagnosis", sa.Text, nullable=False),
        sa.Column("action_plan", sa.JSON, nullable=True),
        sa.Column("flags", sa.JSON, nullable=True),
        sa.Column("triggered_by", sa.Text, nullable=False),
        sa.Column("tokens_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column("cost_brl", sa.Numeric(10, 4), nullable=True),
        _created_at(),
        sa.CheckConstraint("score_total BETWEEN 0 AND 100", name="ck_health_score_total"),
        sa.CheckConstraint("churn_risk IN ('low', 'medium', 'high')", name="ck_health_churn_risk"),
        sa.ForeignKeyConstraint(["client_id"], ["crm.clients.id"], name="fk_health_score_client", ondelete="CASCADE"),
        schema="health",
    )
    op.create_index(
        "ix_health_scores_client_created", "health_scores", ["client_id", "created_at"], schema="health"
    )

    op.create_table(
        "analysis_logs",
        _id(),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="running"),
        sa.Column("triggered_by", sa.Text, nullable=False, server_default="manual"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("agents_log", sa.JSON, nullable=True),
        sa.Column("tokens_used", sa.Integer, nullable=True),
        sa.Column("cost_brl", sa.Numeric(10, 4), nullable=True),
        sa.Column("health_score_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('running', 'completed', 'failed', 'skipped')",
            name="ck_analysis_log_status",
        ),
        sa.ForeignKeyConstraint(
            ["health_score_id"], ["health.health_scores.id"], name="fk_log_health_score", ondelete="SET NULL"
        ),
        schema="health",
    )
    op.create_index(
        "ix_analysis_logs_client_status",
        "analysis_logs",
        ["client_id", "status", "started_at"],
        schema="health",
    )

    op.create_table(
        "action_items",
        _id(),
        sa.Column("health_score_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        _created_at(),
        sa.CheckConstraint(
            "status IN ('pending', 'in_progress', 'done', 'dismissed')",
            name="ck_action_item_status",
        ),
        sa.ForeignKeyConstraint(
            ["health_score_id"], ["health.health_scores.id"], name="fk_action_item_health_score", ondelete="CASCADE"
        ),
        schema="health",
    )
    op.create_index("ix_action_items_health_score_id", "action_items", ["health_score_id"], schema="health")

    op.create_table(
        "alerts",
        _id(),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("severity", sa.Text, nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default="false"),
        _created_at(),
        sa.CheckConstraint("severity IN ('low', 'medium', 'high')", name="ck_alert_severity"),
        sa.ForeignKeyConstraint(["client_id"], ["crm.clients.id"], name="fk_alert_client", ondelete="CASCADE"),
        schema="health",
    )
    op.create_index(
        "ix_alerts_client_type_read", "alerts", ["client_id", "type", "is_read"], schema="health"
    )


def downgrade() -> None:
    op.drop_index("ix_alerts_client_type_read", table_name="alerts", schema="health")
    op.drop_index("ix_action_items_health_score_id", table_name="action_items", schema="health")
    op.drop_index("ix_analysis_logs_client_status", table_name="analysis_logs", schema="health")
    op.drop_index("ix_health_scores_client_created", table_name="health_scores", schema="health")
    op.drop_index("ix_whatsapp_messages_group_ts", table_name="whatsapp_messages", schema="signals")
    op.drop_index("ix_form_submissions_client_id", table_name="form_submissions", schema="signals")
    op.drop_index("ix_client_integrations_client_id", table_name="client_integrations", schema="crm")
    op.drop_index("ix_clients_agency_id", table_name="clients", schema="crm")
    op.drop_index("ix_team_members_agency_id", table_name="team_members", schema="crm")
    # Drop in reverse dependency order
    op.drop_table("alerts", schema="health")
    op.drop_table("action_items", schema="health")
    op.drop_table("analysis_logs", schema="health")
    op.drop_table("health_scores", schema="health")
    op.drop_table("whatsapp_messages", schema="signals")
    op.drop_table("form_submissions", schema="signals")
    op.drop_table("client_integrations", schema="crm")
    op.drop_table("clients", schema="crm")
    op.drop_table("team_members", schema="crm")
    op.drop_table("agency_integrations", schema="crm")
    op.drop_table("agencies", schema="crm")
