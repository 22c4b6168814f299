"""Access token provider for calls to the generation backend."""

from typing import Optional

from core.config import Settings
from core.logging import get_logger

logger = get_logger(__name__)


class TokenProvider:
    """Holds the bearer token used to authorize generation requests.

    Read once from ``BACKEND_ACCESS_TOKEN``; there is no runtime way to
    replace it.
    """

    def __init__(self, settings: Settings):
        token = settings.backend_access_token
        self._token: Optional[str] = token.strip() if token and token.strip() else None
        if self._token is None:
            logger.warning("No backend access token configured; generation calls are unauthenticated")

    async def get_token(self) -> Optional[str]:
        return self._token
