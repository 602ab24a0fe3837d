"""Development notifier that writes codes to the application log."""

from loguru import logger

from tally_api.core.logging import mask_phone
from tally_api.lib.notifier.base import BaseNotifier


class LogNotifier(BaseNotifier):
    """Logs the code instead of sending it. Never enable in production."""

    @property
    def backend_name(self) -> str:
        return "log"

    async def send_code(self, phone: str, code: str) -> None:
        logger.warning("[dev notifier] one-time code for {}: {}", mask_phone(phone), code)
