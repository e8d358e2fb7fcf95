"""Checker service - performs HTTP, container status and TLS certificate probes.

Probes never raise for an unhealthy target: failures are encoded in the
result (HTTP status 0, container sentinels) so one broken site cannot
abort a round.
"""
import asyncio
import logging
import shlex
import ssl
import socket
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

import httpx
from cryptography import x509

from ..models import Server, Site
from .docker_client import ContainerNotFound, DockerClient, DockerError
from .registry import SiteRegistry
from .ssh_client import SSHCommandError, SSHConnectError, SSHTarget, run_remote

logger = logging.getLogger(__name__)

HTTPS_PORT = 443


class ContainerOutcome(str, Enum):
    """How a container status lookup ended."""
    RUNTIME = "runtime"  # Runtime reported a state (running, exited, ...)
    NOT_FOUND = "not_found"
    DOCKER_ERROR = "docker_error"
    SSH_ERROR = "ssh_error"
    UNKNOWN = "unknown"
    NOT_CHECKED = "not_checked"  # Neither local nor assigned to a server


@dataclass(frozen=True)
class ContainerStatus:
    """Result of the container status probe."""
    outcome: ContainerOutcome
    state: str = ""

    @classmethod
    def runtime(cls, state: str) -> "ContainerStatus":
        return cls(ContainerOutcome.RUNTIME, state)

    @property
    def label(self) -> str:
        """Value stored in health_checks.container_status."""
        if self.outcome == ContainerOutcome.RUNTIME:
            return self.state
        if self.outcome == ContainerOutcome.NOT_CHECKED:
            return ""
        return self.outcome.value

    @property
    def is_down(self) -> bool:
        if self.outcome == ContainerOutcome.NOT_FOUND:
            return True
        return self.outcome == ContainerOutcome.RUNTIME and self.state == "exited"


NOT_CHECKED = ContainerStatus(ContainerOutcome.NOT_CHECKED)


@dataclass
class HTTPResult:
    """Result of the HTTP probe. status_code 0 means unreachable or not probed."""
    status_code: int = 0
    latency_ms: int = 0


@dataclass
class SiteCheckResult:
    """Everything one round learned about one site."""
    http: HTTPResult = field(default_factory=HTTPResult)
    container: ContainerStatus = NOT_CHECKED
    cert_expiry: Optional[datetime] = None

    @property
    def is_down(self) -> bool:
        return is_down(self.http.status_code, self.container)

    @property
    def detail(self) -> str:
        return f"HTTP: {self.http.status_code}, Container: {self.container.label}"


class CertCheckError(Exception):
    """The TLS handshake or certificate read failed."""


def is_down(http_status: int, container: ContainerStatus) -> bool:
    """Down when unreachable, any 4xx/5xx, or the container is missing or exited."""
    return http_status == 0 or http_status >= 400 or container.is_down


def days_until(expiry: datetime, now: Optional[datetime] = None) -> int:
    """Whole days until expiry, truncated toward zero."""
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return int((expiry - now).total_seconds() / 86400)


def default_container_name(site: Site) -> str:
    if site.container_name:
        return site.container_name
    return (site.domain or "").replace(".", "-")


class CheckerService:
    """Service for performing the per-site health probes."""

    def __init__(
        self,
        timeout: int = 10,
        docker: Optional[DockerClient] = None,
        registry: Optional[SiteRegistry] = None,
        ssh_runner: Callable[[SSHTarget, str], str] = run_remote,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.docker = docker or DockerClient(timeout=timeout)
        self.registry = registry or SiteRegistry()
        self._ssh_runner = ssh_runner
        self._http_transport = http_transport

    async def probe_http(self, site: Site) -> HTTPResult:
        """GET the site's root over http or https, depending on ssl_enabled."""
        if not site.domain:
            return HTTPResult()

        scheme = "https" if site.ssl_enabled else "http"
        url = f"{scheme}://{site.domain}"

        start = datetime.now()
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._http_transport,
            ) as client:
                response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            latency = int((datetime.now() - start).total_seconds() * 1000)
            logger.debug(f"HTTP probe failed for {url}: {e}")
            return HTTPResult(status_code=0, latency_ms=latency)

        latency = int((datetime.now() - start).total_seconds() * 1000)
        return HTTPResult(status_code=response.status_code, latency_ms=latency)

    async def probe_cert_expiry(self, domain: str) -> datetime:
        """Return the leaf certificate's notAfter (UTC) for domain:443.

        Raises CertCheckError when the handshake or certificate read fails.
        """
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, self._get_cert_expiry, domain, HTTPS_PORT),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise CertCheckError(f"TLS dial timed out for {domain}") from e

    def _get_cert_expiry(self, host: str, port: int) -> datetime:
        """Blocking TLS handshake with full verification."""
        context = ssl.create_default_context()
        try:
            with socket.create_connection((host, port), timeout=self.timeout) as sock:
                with context.wrap_socket(sock, server_hostname=host) as ssock:
                    cert_der = ssock.getpeercert(binary_form=True)
        except (OSError, ssl.SSLError, ValueError) as e:
            # ValueError covers hostnames the idna codec rejects
            raise CertCheckError(f"TLS dial failed for {host}: {e}") from e

        if not cert_der:
            raise CertCheckError(f"no certificates returned for {host}")

        try:
            cert = x509.load_der_x509_certificate(cert_der)
        except ValueError as e:
            raise CertCheckError(f"unreadable certificate from {host}: {e}") from e
        return cert.not_valid_after_utc

    async def probe_container(self, site: Site) -> ContainerStatus:
        """Container state for a local or remote site."""
        if site.is_local:
            return await self.probe_local_container(site)
        if site.server_id is not None:
            try:
                server = await self.registry.get_server(site.server_id)
            except Exception as e:
                logger.warning(f"Failed to load server {site.server_id} for site {site.id}: {e}")
                server = None
            if server is None:
                return ContainerStatus(ContainerOutcome.UNKNOWN)
            return await self.probe_remote_container(site, server)
        return NOT_CHECKED

    async def probe_local_container(self, site: Site) -> ContainerStatus:
        """Inspect the container on the local Docker daemon.

        Compose deployments name containers after the project, so when the
        exact name cannot be inspected the container list is searched by
        substring. A lookup that fails or times out counts as not found;
        docker_error is reserved for a missing daemon socket.
        """
        if not self.docker.available():
            logger.warning(f"Docker socket {self.docker.socket_path} not available")
            return ContainerStatus(ContainerOutcome.DOCKER_ERROR)

        name = default_container_name(site)
        try:
            return await asyncio.wait_for(self._inspect_local(site, name), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Docker lookup timed out for {name}")
            return ContainerStatus(ContainerOutcome.NOT_FOUND)

    async def _inspect_local(self, site: Site, name: str) -> ContainerStatus:
        try:
            return ContainerStatus.runtime(await self.docker.inspect_state(name))
        except ContainerNotFound:
            pass
        except DockerError as e:
            logger.warning(f"Docker inspect failed for {name}: {e}")

        if site.compose_path:
            try:
                containers = await self.docker.list_containers()
            except DockerError as e:
                logger.warning(f"Docker list failed while looking for {name}: {e}")
                containers = []
            for container in containers:
                if any(name in container_name for container_name in container.names):
                    return ContainerStatus.runtime(container.state)

        return ContainerStatus(ContainerOutcome.NOT_FOUND)

    async def probe_remote_container(self, site: Site, server: Server) -> ContainerStatus:
        """Run docker inspect on the site's server over SSH."""
        name = default_container_name(site)
        command = (
            f"docker inspect --format='{{{{.State.Status}}}}' {shlex.quote(name)} 2>/dev/null"
            " || echo 'not found'"
        )
        target = SSHTarget(
            host=server.host,
            port=server.ssh_port or 22,
            user=server.ssh_user,
            key_path=server.ssh_key_path,
            host_key=server.ssh_host_key or "",
        )

        try:
            output = await asyncio.to_thread(self._ssh_runner, target, command)
        except SSHConnectError as e:
            logger.warning(f"SSH connection to {server.host} failed: {e}")
            return ContainerStatus(ContainerOutcome.SSH_ERROR)
        except SSHCommandError as e:
            logger.warning(f"Remote inspect of {name} on {server.host} failed: {e}")
            return ContainerStatus(ContainerOutcome.UNKNOWN)

        output = output.strip()
        if output == "not found":
            return ContainerStatus(ContainerOutcome.NOT_FOUND)
        if not output:
            return ContainerStatus(ContainerOutcome.UNKNOWN)
        return ContainerStatus.runtime(output)
