import logging
from typing import List

import requests
from pydantic import ValidationError

from traefik_fed.internal.domain.errors import UpstreamBadResponse, UpstreamMalformed, UpstreamUnreachable
from traefik_fed.internal.domain.models import RemoteRouter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0  # seconds


class TraefikClient:
    """Client for the administrative API of one upstream Traefik instance.

    Attributes:
        name (str): Upstream name, used in errors and logs.
        base_url (str): API base URL (e.g., 'http://100.64.1.2:8080/api').
        timeout (float): Timeout for each request in seconds.
    """

    def __init__(self, name: str, base_url: str, timeout: float = DEFAULT_TIMEOUT):
        """Initialize a new TraefikClient.

        Args:
            name (str): Upstream name.
            base_url (str): API base URL, without trailing '/http/routers'.
            timeout (float, optional): Timeout for each request in seconds. Defaults to 10.0.
        """
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        logger.debug(f"Initialized TraefikClient for {self.name} at {self.base_url}")

    def get_routers(self) -> List[RemoteRouter]:
        """Fetch all HTTP routers from the upstream.

        No retries are attempted here; the next poll cycle is the retry.

        Returns:
            List[RemoteRouter]: Routers in the order the API reported them.

        Raises:
            UpstreamUnreachable: Transport error or timeout.
            UpstreamBadResponse: Non-2xx status; carries status code and body.
            UpstreamMalformed: Body is not a JSON array of router objects.
        """
        url = f"{self.base_url}/http/routers"
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise UpstreamUnreachable(self.name, f"failed to fetch routers from {url}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise UpstreamBadResponse(self.name, response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamMalformed(self.name, f"failed to parse routers: {e}") from e

        if not isinstance(payload, list):
            raise UpstreamMalformed(self.name, f"expected a JSON array of routers, got {type(payload).__name__}")

        try:
            return [RemoteRouter.model_validate(item) for item in payload]
        except ValidationError as e:
            raise UpstreamMalformed(self.name, f"failed to parse routers: {e}") from e
