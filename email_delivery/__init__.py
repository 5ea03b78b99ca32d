"""Outbound email delivery service."""
