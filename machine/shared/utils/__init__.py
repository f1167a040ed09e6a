"""Shared utilities for the Machine services."""
from .pii import hash_pii, hash_people, hash_text_for_audit, configure_pii_salt

__all__ = ["hash_pii", "hash_people", "hash_text_for_audit", "configure_pii_salt"]
