from __future__ import annotations
from sqlalchemy.orm import declarative_base, relationship, Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, ForeignKey, DateTime, UniqueConstraint, text
from typing import Optional

Base = declarative_base()

# --- Organizations, properties and user profiles ---
class Organization(Base):
    __tablename__ = 'organizations'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    properties = relationship('Property', back_populates='organization')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

class UserProfile(Base):
    """A user as known to this service. Authentication itself is external.

    ``role`` and ``organization_id`` stay empty until the profile is completed
    (self-assigned occupant role, or a redeemed invite code).
    """
    __tablename__ = 'user_profiles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    organization_id: Mapped[Optional[int]] = mapped_column(ForeignKey('organizations.id'), nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

class Property(Base):
    __tablename__ = 'properties'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey('organizations.id'), nullable=False, index=True)
    building_name: Mapped[str] = mapped_column(String(128), nullable=False)
    unit_number: Mapped[str] = mapped_column(String(32), nullable=False)
    tenant_id: Mapped[Optional[int]] = mapped_column(ForeignKey('user_profiles.id'), nullable=True, index=True)
    owner_id: Mapped[Optional[int]] = mapped_column(ForeignKey('user_profiles.id'), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    organization = relationship('Organization', back_populates='properties')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    __table_args__ = (UniqueConstraint('organization_id', 'building_name', 'unit_number', name='uq_property_unit'),)

    @property
    def approver_id(self) -> Optional[int]:
        """User who signs off completed work: the tenant, or the owner when the unit has no tenant."""
        return self.tenant_id if self.tenant_id is not None else self.owner_id

    def is_occupant(self, user_id: int) -> bool:
        return user_id is not None and user_id in (self.tenant_id, self.owner_id)
