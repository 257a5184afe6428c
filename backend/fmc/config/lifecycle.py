"""Defaults for the request lifecycle, approval codes and invite codes.

Values here are fallbacks; ``create_app`` lets environment variables or the
config mapping override the TTLs and the request number prefix.
"""
from datetime import timedelta

APPROVAL_CODE_LENGTH = 6
APPROVAL_CODE_TTL = timedelta(minutes=10)

INVITE_CODE_LENGTH = 8
INVITE_CODE_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'
INVITE_CODE_TTL_DAYS = 7
INVITE_CODE_MAX_TTL_DAYS = 90

REQUEST_NUMBER_PREFIX = 'REQ'
REQUEST_NUMBER_WIDTH = 3
# Attempts before giving up on a colliding request number insert
REQUEST_NUMBER_MAX_ATTEMPTS = 5
