"""Prometheus counters for the auth flows."""

from __future__ import annotations

from prometheus_client import Counter

REGISTRATIONS = Counter(
    "crm_identity_registrations_total",
    "Tenant registrations by outcome.",
    ["outcome"],
)
LOGINS = Counter(
    "crm_identity_logins_total",
    "Login attempts by outcome.",
    ["outcome"],
)
TOKEN_REFRESHES = Counter(
    "crm_identity_token_refreshes_total",
    "Refresh token redemptions by outcome.",
    ["outcome"],
)
EMAIL_CONFIRMATIONS = Counter(
    "crm_identity_email_confirmations_total",
    "Email confirmation attempts by outcome.",
    ["outcome"],
)
ORPHANED_TENANTS = Counter(
    "crm_identity_orphaned_tenants_total",
    "Tenants left behind after a failed compensating delete.",
)
