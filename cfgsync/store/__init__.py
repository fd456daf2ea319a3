"""Persistence: the canonical SSOT tree and the metadata database."""
