"""Classify subscriber emails by domain."""

from __future__ import annotations

from ..jobs.models import EmailType

CONSUMER_DOMAINS = frozenset(
    {
        "gmail.com",
        "yahoo.com",
        "outlook.com",
        "hotmail.com",
        "icloud.com",
        "aol.com",
        "protonmail.com",
        "mail.com",
        "zoho.com",
        "yandex.com",
        "gmx.com",
        "live.com",
        "msn.com",
        "me.com",
        "mac.com",
    }
)


def classify_email(email: str) -> EmailType:
    """Consumer mailbox domains are personal; everything else is corporate."""
    _, _, domain = email.strip().partition("@")
    domain = domain.lower()
    if not domain:
        return EmailType.CORPORATE
    return EmailType.PERSONAL if domain in CONSUMER_DOMAINS else EmailType.CORPORATE
