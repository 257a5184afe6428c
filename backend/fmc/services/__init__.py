"""Service factories bound to the current Flask app.

The clock and notification dispatcher are stored on ``app.extensions`` by
``create_app`` so tests can swap them (fixed clock, recording dispatcher).
"""
from __future__ import annotations
from datetime import timedelta
from flask import current_app

CLOCK_KEY = 'fmc.clock'
NOTIFIER_KEY = 'fmc.notifier'


def current_clock():
    return current_app.extensions[CLOCK_KEY]


def current_notifier():
    return current_app.extensions[NOTIFIER_KEY]


def timeline_service():
    from fmc.services.timeline import TimelineRecorder
    return TimelineRecorder(current_clock())


def lifecycle_service():
    from fmc.services.lifecycle import RequestLifecycleManager
    return RequestLifecycleManager(
        clock=current_clock(),
        notifier=current_notifier(),
        timeline=timeline_service(),
        number_prefix=current_app.config['REQUEST_NUMBER_PREFIX'],
    )


def approval_code_service():
    from fmc.services.approval_codes import ApprovalCodeService
    return ApprovalCodeService(
        clock=current_clock(),
        notifier=current_notifier(),
        timeline=timeline_service(),
        ttl=timedelta(minutes=int(current_app.config['APPROVAL_CODE_TTL_MINUTES'])),
    )


def invite_service():
    from fmc.services.invites import InviteProvisioningService
    return InviteProvisioningService(
        clock=current_clock(),
        default_ttl_days=int(current_app.config['INVITE_CODE_TTL_DAYS']),
    )
