"""Cliniko practice management integration."""

from clinic_jobs.integrations.cliniko.client import ClinikoClient, get_cliniko_client

__all__ = [
    "ClinikoClient",
    "get_cliniko_client",
]
