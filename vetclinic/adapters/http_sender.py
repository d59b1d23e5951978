from typing import Any

import httpx
from loguru import logger

from vetclinic.domain.exceptions import DeliveryError
from vetclinic.domain.models import Communication


class HttpNotificationSender:
    """Delivers communications through an HTTP notification gateway.

    The gateway receives one JSON document per message and answers with the
    provider's message id (``id`` or ``message_id``). The communication id is
    sent as ``Idempotency-Key`` so a retried request is not delivered twice.
    """

    def __init__(
        self,
        url: str,
        *,
        api_key: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self, communication: Communication) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Idempotency-Key": communication.communication_id,
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    @staticmethod
    def _payload(communication: Communication) -> dict[str, Any]:
        return {
            "channel": communication.channel.value,
            "to": communication.recipient,
            "name": communication.recipient_name,
            "subject": communication.subject,
            "body": communication.body,
            "type": communication.type.value,
            "reference": communication.communication_id,
            "appointment_id": communication.appointment_id,
        }

    async def send(self, communication: Communication) -> str:
        try:
            resp = await self._client.post(
                self._url,
                headers=self._headers(communication),
                json=self._payload(communication),
            )
            resp.raise_for_status()
            data: dict[str, Any] = resp.json()
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(
                f"Notification gateway rejected message: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.TimeoutException as exc:
            raise DeliveryError("Notification gateway request timed out") from exc
        except Exception as exc:
            raise DeliveryError(f"Notification gateway request failed: {exc}") from exc

        message_id = data.get("id") or data.get("message_id")
        if not message_id:
            raise DeliveryError("Notification gateway response carried no message id")

        logger.debug("Gateway accepted {} as {}", communication.communication_id, message_id)
        return str(message_id)

    async def health_check(self) -> bool:
        try:
            resp = await self._client.get(self._url)
            return resp.status_code < 500
        except Exception as exc:
            logger.warning("Notification gateway health check failed: {}", exc)
            return False

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Notification gateway client closed")
