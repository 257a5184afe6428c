from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Boolean, ForeignKey, DateTime
from fmc.models.identity import Base

class MaintenanceRequest(Base):
    __tablename__ = 'maintenance_requests'
    # Status constants
    STATUS_OPEN = 'open'
    STATUS_ASSIGNED = 'assigned'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CLOSED = 'closed'
    STATUS_CANCELLED = 'cancelled'
    ALL_STATUSES = (STATUS_OPEN, STATUS_ASSIGNED, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CLOSED, STATUS_CANCELLED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default='medium')
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_OPEN, index=True)
    property_id: Mapped[int] = mapped_column(ForeignKey('properties.id'), nullable=False, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey('organizations.id'), nullable=False, index=True)
    created_by: Mapped[int] = mapped_column(ForeignKey('user_profiles.id'), nullable=False)
    assigned_technician_id: Mapped[Optional[int]] = mapped_column(ForeignKey('user_profiles.id'), nullable=True, index=True)
    supervisor_id: Mapped[Optional[int]] = mapped_column(ForeignKey('user_profiles.id'), nullable=True)
    preferred_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    preferred_time_slot: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    scheduling_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_customer_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancel_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    actual_completion_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

# Status flow: open -> assigned -> in_progress -> completed -> closed
# cancelled is reachable from every non-terminal status; closed and cancelled are terminal.
# is_customer_approved only flips through a consumed approval code.
