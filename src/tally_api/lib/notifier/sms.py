"""HTTP SMS gateway notifier.

Posts ``{to, sender, message}`` JSON to a configured gateway endpoint with a
bearer API key.  Any 2xx response counts as accepted for delivery.
"""

import httpx
from loguru import logger

from tally_api.core.logging import mask_phone
from tally_api.lib.notifier.base import BaseNotifier, NotificationError

DEFAULT_TIMEOUT = 10.0
MESSAGE_TEMPLATE = "{code} is your one-time code to authorize the election results declaration. Do not share it."


class HttpSmsNotifier(BaseNotifier):
    """Sends one-time codes through an HTTP SMS gateway."""

    def __init__(
        self,
        gateway_url: str,
        api_key: str,
        sender_id: str = "ELECTN",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._gateway_url = gateway_url
        self._api_key = api_key
        self._sender_id = sender_id
        self._timeout = timeout

    @property
    def backend_name(self) -> str:
        return "sms"

    def build_payload(self, phone: str, code: str) -> dict[str, str]:
        """Build the gateway request body."""
        return {
            "to": phone,
            "sender": self._sender_id,
            "message": MESSAGE_TEMPLATE.format(code=code),
        }

    async def send_code(self, phone: str, code: str) -> None:
        """Send the code through the gateway.

        Raises:
            NotificationError: On timeout, connection failure or non-2xx response.
        """
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._gateway_url, json=self.build_payload(phone, code), headers=headers)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning("SMS gateway timeout sending code to {}", mask_phone(phone))
            raise NotificationError("sms", "Gateway request timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning("SMS gateway HTTP error {}", e.response.status_code)
            raise NotificationError(
                "sms", f"Gateway returned HTTP {e.response.status_code}", status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            logger.warning("SMS gateway connection error")
            raise NotificationError("sms", "Connection to SMS gateway failed") from e

        logger.info("One-time code handed to SMS gateway for {}", mask_phone(phone))
