"""Admin alerts for abandoned jobs, sent via a Telegram bot (aiogram 3.x)."""

import json
import logging

from aiogram import Bot
from aiogram.utils.token import TokenValidationError

from clinic_jobs.config import Settings, get_settings
from clinic_jobs.models import Job

logger = logging.getLogger(__name__)

# Telegram message size limit
MAX_MESSAGE_LENGTH = 4096

# Payload keys never forwarded to the admin chat
REDACTED_KEYS = {"token"}


class AdminAlerter:
    """Sends dead-letter notifications to the admin Telegram chat."""

    def __init__(self, bot_token: str, chat_id: str) -> None:
        """Initialize Telegram bot.

        Args:
            bot_token: Telegram bot token
            chat_id: Admin chat ID
        """
        self.bot = Bot(token=bot_token)
        self.chat_id = chat_id

    async def job_abandoned(self, job: Job, reason: str) -> bool:
        """Notify the admin chat that a job will not be retried.

        Alert failures are logged and never raised.

        Returns:
            True if sent successfully, False otherwise
        """
        data = {key: ("***" if key in REDACTED_KEYS else value) for key, value in job.data.items()}
        text = (
            f"⚠️ Job abandoned\n\n"
            f"ID: {job.id}\n"
            f"Type: {job.type}\n"
            f"Retries: {job.retry_count}\n"
            f"Reason: {reason}\n\n"
            f"Data: {json.dumps(data, indent=2, ensure_ascii=False, default=str)}"
        )
        if len(text) > MAX_MESSAGE_LENGTH:
            text = text[: MAX_MESSAGE_LENGTH - 3] + "..."

        try:
            await self.bot.send_message(chat_id=int(self.chat_id), text=text)
            return True
        except Exception as e:
            logger.warning(f"Failed to send admin alert for job {job.id}: {e}")
            return False

    async def close(self) -> None:
        await self.bot.session.close()


def get_admin_alerter(settings: Settings | None = None) -> AdminAlerter | None:
    """Build the alerter, or None when Telegram alerts are not configured.

    Invalid Telegram settings disable alerts instead of stopping the worker.
    """
    settings = settings or get_settings()
    if not settings.alerts_enabled:
        return None

    try:
        int(settings.admin_telegram_chat_id)
        return AdminAlerter(settings.telegram_bot_token, settings.admin_telegram_chat_id)
    except (TokenValidationError, ValueError) as e:
        logger.warning(f"Admin alerts disabled, invalid Telegram settings: {e}")
        return None
