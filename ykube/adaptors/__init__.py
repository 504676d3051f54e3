"""Lazy adaptors for optional cloud SDKs."""
