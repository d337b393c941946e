"""Webhook authentication helpers."""

from .signature import SIGNATURE_HEADER, SignatureCheck, create_signature, verify_signature

__all__ = ["SIGNATURE_HEADER", "SignatureCheck", "create_signature", "verify_signature"]
