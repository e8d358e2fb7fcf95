"""Local Docker Engine API client over the unix socket."""
import logging
import os
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

DOCKER_SOCKET = "/var/run/docker.sock"


class DockerError(Exception):
    """The Docker daemon could not be reached or returned an error."""


class ContainerNotFound(DockerError):
    """No container with the requested name exists."""


@dataclass
class ContainerSummary:
    """One entry of the container list."""
    names: List[str]
    state: str


class DockerClient:
    """Minimal async Docker Engine API client.

    Only the read-only inspect and list endpoints are used.
    """

    def __init__(
        self,
        socket_path: str = DOCKER_SOCKET,
        timeout: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.socket_path = socket_path
        self.timeout = timeout
        self._transport = transport

    def available(self) -> bool:
        """Whether a client can be built: an injected transport or an existing socket."""
        return self._transport is not None or os.path.exists(self.socket_path)

    def _client(self) -> httpx.AsyncClient:
        transport = self._transport or httpx.AsyncHTTPTransport(uds=self.socket_path)
        return httpx.AsyncClient(
            base_url="http://docker",
            transport=transport,
            timeout=self.timeout,
        )

    async def inspect_state(self, name: str) -> str:
        """Return the container's State.Status (running, exited, ...)."""
        try:
            async with self._client() as client:
                response = await client.get(f"/containers/{quote(name, safe='')}/json")
        except httpx.HTTPError as e:
            raise DockerError(f"docker inspect {name} failed: {e}") from e

        if response.status_code == 404:
            raise ContainerNotFound(name)
        if response.status_code >= 400:
            raise DockerError(f"docker inspect {name} returned {response.status_code}")

        state = (response.json().get("State") or {}).get("Status")
        return state or "unknown"

    async def list_containers(self) -> List[ContainerSummary]:
        """All containers, including stopped ones."""
        try:
            async with self._client() as client:
                response = await client.get("/containers/json", params={"all": "1"})
        except httpx.HTTPError as e:
            raise DockerError(f"docker list failed: {e}") from e

        if response.status_code >= 400:
            raise DockerError(f"docker list returned {response.status_code}")

        return [
            ContainerSummary(names=item.get("Names") or [], state=item.get("State") or "")
            for item in response.json()
        ]
