#!/usr/bin/env python
"""Idempotent seed script for a demo organization.

Creates one FMC organization with a head, supervisor and technician, a tenant
and owner occupying one property, and an unused technician invite code.

Usage:
    python backend/scripts/seed_demo.py               # seed normally
    python backend/scripts/seed_demo.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_demo.py --show        # print seeded users and codes
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from datetime import timedelta
from sqlalchemy import select, inspect

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from fmc import create_app, get_db  # type: ignore
from fmc.constants.roles import (
    ROLE_FMC_HEAD, ROLE_SUPERVISOR, ROLE_TECHNICIAN, ROLE_TENANT, ROLE_BUILDING_OWNER,
)
from fmc.models.identity import Base, Organization, UserProfile, Property
from fmc.models.invite_code import InviteCode
import fmc.models.maintenance_request  # noqa: F401
import fmc.models.approval_code  # noqa: F401
import fmc.models.timeline  # noqa: F401
from fmc.services.invites import random_invite_code
from fmc.utils.clock import SystemClock

DEMO_ORG = os.getenv('SEED_ORG_NAME', 'Demo Facilities')
DEMO_USERS = (
    ('head@example.com', 'Demo Head', ROLE_FMC_HEAD, True),
    ('supervisor@example.com', 'Demo Supervisor', ROLE_SUPERVISOR, True),
    ('technician@example.com', 'Demo Technician', ROLE_TECHNICIAN, True),
    ('tenant@example.com', 'Demo Tenant', ROLE_TENANT, False),
    ('owner@example.com', 'Demo Owner', ROLE_BUILDING_OWNER, False),
)


def ensure_organization(session):
    org = session.execute(select(Organization).where(Organization.name == DEMO_ORG)).scalar_one_or_none()
    if org:
        return org, False
    org = Organization(name=DEMO_ORG, is_active=True)
    session.add(org)
    session.flush()
    return org, True


def ensure_users(session, org):
    users, created = {}, 0
    for email, name, role, staff in DEMO_USERS:
        user = session.execute(select(UserProfile).where(UserProfile.email == email)).scalar_one_or_none()
        if not user:
            user = UserProfile(email=email, name=name, role=role, organization_id=org.id if staff else None, is_active=True)
            session.add(user)
            created += 1
        users[role] = user
    session.flush()
    return users, created


def ensure_property(session, org, tenant, owner):
    prop = session.execute(select(Property).where(
        Property.organization_id == org.id, Property.building_name == 'Tower A', Property.unit_number == '101',
    )).scalar_one_or_none()
    if prop:
        return prop, False
    prop = Property(organization_id=org.id, building_name='Tower A', unit_number='101',
                    tenant_id=tenant.id, owner_id=owner.id, is_active=True)
    session.add(prop)
    session.flush()
    return prop, True


def ensure_invite(session, org, creator):
    existing = session.execute(select(InviteCode).where(
        InviteCode.organization_id == org.id, InviteCode.role == ROLE_TECHNICIAN,
        InviteCode.used_by.is_(None), InviteCode.is_active.is_(True),
    )).scalars().first()
    if existing:
        return existing, False
    now = SystemClock().now()
    invite = InviteCode(code=random_invite_code(), organization_id=org.id, role=ROLE_TECHNICIAN,
                        expires_at=now + timedelta(days=7), is_active=True, created_by=creator.id, created_at=now)
    session.add(invite)
    session.flush()
    return invite, True


def parse_args():
    p = argparse.ArgumentParser(
        description="Seed a demo facility-management organization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_demo.py\n  dry run: seed_demo.py --dry-run\n""")
    )
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--show', action='store_true', help='Print seeded users, property and invite code')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        engine = session.get_bind()
        if not inspect(engine).has_table('organizations'):
            # Bootstrap schema when migrations have not run yet; prefer `alembic upgrade head`
            Base.metadata.create_all(engine)
        try:
            org, org_created = ensure_organization(session)
            users, users_created = ensure_users(session, org)
            prop, prop_created = ensure_property(session, org, users[ROLE_TENANT], users[ROLE_BUILDING_OWNER])
            invite, invite_created = ensure_invite(session, org, users[ROLE_SUPERVISOR])
            summary = (f"organization={'new' if org_created else 'kept'} users_created={users_created} "
                       f"property={'new' if prop_created else 'kept'} invite={'new' if invite_created else 'kept'}")
            if args.show:
                for role, user in users.items():
                    print(f"{role.ljust(20)} id={user.id} email={user.email}")
                print(f"{'property'.ljust(20)} id={prop.id} {prop.building_name}/{prop.unit_number}")
                print(f"{'invite'.ljust(20)} {invite.code} ({invite.role})")
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) {summary}")
            else:
                session.commit()
                print(f"[DONE] {summary}")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

if __name__ == '__main__':
    main()
