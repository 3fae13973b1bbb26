"""AEO audit records and captured leads."""

from __future__ import annotations

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, StringUUID, TimestampMixin, UUIDMixin


class AuditLead(Base, UUIDMixin, TimestampMixin):
    """Email captured after an audit; one row per (email, url)."""

    __tablename__ = "aeo_audit_leads"
    __table_args__ = (
        UniqueConstraint("email", "url", name="uq_aeo_audit_leads_email_url"),
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    brand_name: Mapped[str] = mapped_column(String(100), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    grade: Mapped[str | None] = mapped_column(String(2), nullable=True)
    report_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="landing_page")
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    utm_source: Mapped[str | None] = mapped_column(String(255), nullable=True)
    utm_medium: Mapped[str | None] = mapped_column(String(255), nullable=True)
    utm_campaign: Mapped[str | None] = mapped_column(String(255), nullable=True)
    full_report_viewed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    audits: Mapped[list[AuditRecord]] = relationship("AuditRecord", back_populates="lead")

    def __repr__(self) -> str:
        return f"<AuditLead {self.id} {self.url}>"


class AuditRecord(Base, UUIDMixin, TimestampMixin):
    """One audit run, successful or not."""

    __tablename__ = "aeo_audits"

    brand_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)

    aeo_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    verdict: Mapped[str | None] = mapped_column(String(32), nullable=True)
    grade: Mapped[str | None] = mapped_column(String(2), nullable=True)

    entity_profile: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    llm_mentions_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    llm_mentions_data: Mapped[list[dict] | None] = mapped_column(JSONB, nullable=True)
    chatgpt_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_search_volume: Mapped[int | None] = mapped_column(Integer, nullable=True)
    knowledge_graph_exists: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    knowledge_graph_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    hallucinations: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    action_plan: Mapped[list[dict] | None] = mapped_column(JSONB, nullable=True)
    full_report: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    processing_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    scrape_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    api_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    lead_id: Mapped[str | None] = mapped_column(
        StringUUID(),
        ForeignKey("aeo_audit_leads.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    lead: Mapped[AuditLead | None] = relationship("AuditLead", back_populates="audits")

    def __repr__(self) -> str:
        return f"<AuditRecord {self.id} {self.brand_name} {self.processing_status}>"
