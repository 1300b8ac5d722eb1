"""Lead bucket and custom field definition models."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Boolean, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leaddesk.models.base import AuditMixin, Base, UUIDPrimaryKeyMixin
from leaddesk.models.enums import CustomFieldType


class LeadBucket(Base, UUIDPrimaryKeyMixin, AuditMixin):
    """Named template grouping the custom fields applied to imported leads."""

    __tablename__ = "lead_buckets"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    fields = relationship(
        "CustomField",
        back_populates="bucket",
        order_by="CustomField.display_order",
        cascade="all, delete-orphan",
    )


class CustomField(Base, UUIDPrimaryKeyMixin, AuditMixin):
    __tablename__ = "custom_fields"
    __table_args__ = (UniqueConstraint("bucket_id", "name", name="uq_custom_fields_bucket_name"),)

    bucket_id: Mapped[str] = mapped_column(ForeignKey("lead_buckets.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    field_type: Mapped[CustomFieldType] = mapped_column(
        Enum(CustomFieldType, values_callable=lambda members: [member.value for member in members]),
        default=CustomFieldType.TEXT,
        nullable=False,
    )
    options: Mapped[list[Any] | None] = mapped_column(JSON)
    is_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    bucket = relationship("LeadBucket", back_populates="fields")
