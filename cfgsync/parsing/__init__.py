"""Metadata parsing for resource documents."""
