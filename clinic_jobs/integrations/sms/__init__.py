"""SMS gateway integration."""

from clinic_jobs.integrations.sms.client import SmsClient, get_sms_client

__all__ = [
    "SmsClient",
    "get_sms_client",
]
