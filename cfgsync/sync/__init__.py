"""Reconciliation engines: discovery, projection, drift, updates."""
