"""Okta Cross-App Access (ID-JAG) token-exchange broker."""

__version__ = "1.0.0"
