"""SQLAlchemy 2.0 ORM models for the client health-score service.

Covers 11 tables across 3 schemas:
  - crm: agencies, agency_integrations, team_members, clients,
         client_integrations
  - signals: form_submissions, whatsapp_messages
  - health: analysis_logs, health_scores, action_items, alerts
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    UUID,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


_INTEGRATION_TYPE_CHECK = "type IN ('asaas', 'dom_pagamentos')"


# ===========================================================================
# Schema: crm
# ===========================================================================


class Agency(Base):
    """crm.agencies — tenant. analysis_day: 0=Sunday … 6=Saturday."""

    __tablename__ = "agencies"
    __table_args__ = (
        CheckConstraint(
            "analysis_day IS NULL OR analysis_day BETWEEN 0 AND 6",
            name="ck_agency_analysis_day",
        ),
        {"schema": "crm"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    analysis_day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    whatsapp_instance: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    whatsapp_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Encrypted {"api_key": ...}
    llm_credentials_enc: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    integrations: Mapped[list["AgencyIntegration"]] = relationship(
        "AgencyIntegration", back_populates="agency", cascade="all, delete-orphan"
    )
    team_members: Mapped[list["TeamMember"]] = relationship(
        "TeamMember", back_populates="agency", cascade="all, delete-orphan"
    )
    clients: Mapped[list["Client"]] = relationship("Client", back_populates="agency")


class AgencyIntegration(Base):
    """crm.agency_integrations — encrypted provider credentials per agency."""

    __tablename__ = "agency_integrations"
    __table_args__ = (
        CheckConstraint(_INTEGRATION_TYPE_CHECK, name="ck_agency_integration_type"),
        UniqueConstraint("agency_id", "type", name="uq_agency_integration_type"),
        {"schema": "crm"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    agency_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("crm.agencies.id"), nullable=False
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    # AES-GCM "iv:ciphertext" of a JSON object, see db.encryption
    credentials_enc: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, server_default="true", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    agency: Mapped["Agency"] = relationship("Agency", back_populates="integrations")


class TeamMember(Base):
    """crm.team_members — agency staff; their phones identify team messages."""

    __tablename__ = "team_members"
    __table_args__ = {"schema": "crm"}

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    agency_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("crm.agencies.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    agency: Mapped["Agency"] = relationship("Agency", back_populates="team_members")


class Client(Base):
    """crm.clients — a client account of an agency."""

    __tablename__ = "clients"
    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive', 'churned')",
            name="ck_client_status",
        ),
        {"schema": "crm"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    agency_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("crm.agencies.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    short_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    segment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contract_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    contract_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    mrr_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    tcv_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    whatsapp_group_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, server_default="active", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    agency: Mapped["Agency"] = relationship("Agency", back_populates="clients")
    integrations: Mapped[list["ClientIntegration"]] = relationship(
        "ClientIntegration", back_populates="client", cascade="all, delete-orphan"
    )

    @property
    def contract_value(self) -> Optional[Decimal]:
        """Monthly value when known, otherwise the total contract value."""
        return self.mrr_value or self.tcv_value


class ClientIntegration(Base):
    """crm.client_integrations — client's customer reference at a provider."""

    __tablename__ = "client_integrations"
    __table_args__ = (
        CheckConstraint(_INTEGRATION_TYPE_CHECK, name="ck_client_integration_type"),
        UniqueConstraint(
            "client_id", "type", "customer_ref", name="uq_client_integration_ref"
        ),
        {"schema": "crm"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("crm.clients.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    # Asaas customer id, or CPF/CNPJ for Dom Pagamentos
    customer_ref: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, server_default="true", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    client: Mapped["Client"] = relationship("Client", back_populates="integrations")


# ===========================================================================
# Schema: signals
# ===========================================================================


class FormSubmission(Base):
    """signals.form_submissions — NPS / outcome survey answers."""

    __tablename__ = "form_submissions"
    __table_args__ = (
        CheckConstraint("nps_score BETWEEN 0 AND 10", name="ck_form_nps_score"),
        CheckConstraint("outcome_score BETWEEN 0 AND 10", name="ck_form_outcome_score"),
        {"schema": "signals"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("crm.clients.id"), nullable=False, index=True
    )
    nps_score: Mapped[int] = mapped_column(Integer, nullable=False)
    outcome_score: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class WhatsappMessage(Base):
    """signals.whatsapp_messages — local cache of client group messages."""

    __tablename__ = "whatsapp_messages"
    __table_args__ = (
        Index("ix_whatsapp_messages_group_ts", "group_id", "timestamp_unix"),
        {"schema": "signals"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("crm.clients.id"), nullable=True
    )
    group_id: Mapped[str] = mapped_column(Text, nullable=False)
    message_id: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    sender_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sender_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_from_me: Mapped[bool] = mapped_column(Boolean, server_default="false", nullable=False)
    timestamp_unix: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


# ===========================================================================
# Schema: health
# ===========================================================================


class AnalysisLog(Base):
    """health.analysis_logs — one row per analysis attempt; doubles as the soft lock."""

    __tablename__ = "analysis_logs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'completed', 'failed', 'skipped')",
            name="ck_analysis_log_status",
        ),
        Index("ix_analysis_logs_client_status", "client_id", "status", "started_at"),
        {"schema": "health"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # Loose UUID references, no FK: logs outlive deleted clients
    client_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    agency_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    status: Mapped[str] = mapped_column(Text, server_default="running", nullable=False)
    triggered_by: Mapped[str] = mapped_column(Text, server_default="manual", nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    finished_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    agents_log: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    tokens_used: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cost_brl: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4), nullable=True)
    health_score_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("health.health_scores.id"), nullable=True
    )


class HealthScore(Base):
    """health.health_scores — append-only history of successful analyses."""

    __tablename__ = "health_scores"
    __table_args__ = (
        CheckConstraint("score_total BETWEEN 0 AND 100", name="ck_health_score_total"),
        CheckConstraint(
            "churn_risk IN ('low', 'medium', 'high')", name="ck_health_churn_risk"
        ),
        Index("ix_health_scores_client_created", "client_id", "created_at"),
        {"schema": "health"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("crm.clients.id"), nullable=False
    )
    agency_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    score_total: Mapped[int] = mapped_column(Integer, nullable=False)
    score_financial: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    score_proximity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    score_outcome: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    score_nps: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    churn_risk: Mapped[str] = mapped_column(Text, nullable=False)
    diagnosis: Mapped[str] = mapped_column(Text, nullable=False)
    action_plan: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    flags: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    triggered_by: Mapped[str] = mapped_column(Text, nullable=False)
    tokens_used: Mapped[int] = mapped_column(Integer, server_default="0", nullable=False)
    cost_brl: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    action_items: Mapped[list["ActionItem"]] = relationship(
        "ActionItem",
        back_populates="health_score",
        order_by="ActionItem.position",
        cascade="all, delete-orphan",
    )


class ActionItem(Base):
    """health.action_items — ordered action plan entries of a health score."""

    __tablename__ = "action_items"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'done', 'dismissed')",
            name="ck_action_item_status",
        ),
        {"schema": "health"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    health_score_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("health.health_scores.id"), nullable=False, index=True
    )
    client_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    agency_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, server_default="pending", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    health_score: Mapped["HealthScore"] = relationship(
        "HealthScore", back_populates="action_items"
    )


class Alert(Base):
    """health.alerts — one unread alert per (client, type) at a time."""

    __tablename__ = "alerts"
    __table_args__ = (
        CheckConstraint(
            "severity IN ('low', 'medium', 'high')", name="ck_alert_severity"
        ),
        Index("ix_alerts_client_type_read", "client_id", "type", "is_read"),
        {"schema": "health"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("crm.clients.id"), nullable=False
    )
    agency_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, server_default="false", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
