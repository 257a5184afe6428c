from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, ForeignKey, DateTime
from fmc.models.identity import Base

class ApprovalCode(Base):
    """Completion-approval code. One row per request, overwritten on every issue.

    Overwriting (instead of inserting) is what supersedes an earlier code: at most
    one non-consumed, non-expired value can exist for a request.
    """
    __tablename__ = 'approval_codes'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(ForeignKey('maintenance_requests.id', ondelete='CASCADE'), unique=True, nullable=False)
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    issued_by: Mapped[int] = mapped_column(ForeignKey('user_profiles.id'), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    consumed_by: Mapped[Optional[int]] = mapped_column(ForeignKey('user_profiles.id'), nullable=True)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
