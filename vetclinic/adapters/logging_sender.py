import uuid

from loguru import logger

from vetclinic.domain.models import Communication


class LoggingNotificationSender:
    """Development sender: writes each message to the log instead of delivering it."""

    async def send(self, communication: Communication) -> str:
        external_id = f"log-{uuid.uuid4().hex[:12]}"
        logger.info(
            "[{}] {} '{}' for appointment {} ({})",
            communication.channel.value,
            communication.type.value,
            communication.subject,
            communication.appointment_id,
            external_id,
        )
        return external_id

    async def close(self) -> None:
        return None
