"""Lead model module."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leaddesk.models.base import AuditMixin, Base, UUIDPrimaryKeyMixin


class Lead(Base, UUIDPrimaryKeyMixin, AuditMixin):
    __tablename__ = "leads"
    __table_args__ = (
        Index("idx_leads_created_at_id", "created_at", "id"),
        Index("idx_leads_assigned_to", "assigned_to"),
        Index("idx_leads_school", "school"),
        Index("idx_leads_district", "district"),
        Index("idx_leads_gender", "gender"),
        Index("idx_leads_stream", "stream"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(64))
    email: Mapped[str | None] = mapped_column(String(320))
    school: Mapped[str | None] = mapped_column(String(255))
    district: Mapped[str | None] = mapped_column(String(255))
    gender: Mapped[str | None] = mapped_column(String(32))
    stream: Mapped[str | None] = mapped_column(String(120))
    custom_fields: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    bucket_id: Mapped[str | None] = mapped_column(ForeignKey("lead_buckets.id", ondelete="SET NULL"))
    created_by: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    assigned_to: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    assignment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    assigned_user = relationship("User", foreign_keys=[assigned_to], lazy="joined")
    bucket = relationship("LeadBucket")
