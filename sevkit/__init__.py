"""Tenant-side tools for AMD SEV guest launch and attestation."""

__version__ = "6.2.1"

__all__ = ["array", "cached_chain", "key", "parser", "session", "vmsa"]