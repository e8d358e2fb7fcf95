"""SSH command execution on remote Docker hosts."""
import base64
import logging
from dataclasses import dataclass

import paramiko
from paramiko.pkey import UnknownKeyType

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10


class SSHConnectError(Exception):
    """Could not establish an SSH session."""


class SSHCommandError(Exception):
    """The remote command could not be run or exited non-zero."""


@dataclass
class SSHTarget:
    """Connection details for one server."""
    host: str
    port: int
    user: str
    key_path: str
    host_key: str = ""  # authorized_keys line, e.g. "ssh-ed25519 AAAA..."


def _host_entry(host: str, port: int) -> str:
    return host if port == 22 else f"[{host}]:{port}"


def _pin_host_key(client: paramiko.SSHClient, target: SSHTarget) -> None:
    """Trust only the stored host key, or any key when none is stored."""
    if not target.host_key:
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        return

    parts = target.host_key.split()
    if len(parts) < 2:
        raise SSHConnectError("invalid stored host key")
    key_type, key_data = parts[0], parts[1]
    try:
        key = paramiko.PKey.from_type_string(key_type, base64.b64decode(key_data))
    except (ValueError, UnknownKeyType, paramiko.SSHException) as e:
        raise SSHConnectError(f"invalid stored host key: {e}") from e

    client.get_host_keys().add(_host_entry(target.host, target.port), key_type, key)
    client.set_missing_host_key_policy(paramiko.RejectPolicy())


def connect(target: SSHTarget) -> paramiko.SSHClient:
    """Open an SSH session using public key authentication."""
    client = paramiko.SSHClient()
    try:
        _pin_host_key(client, target)
        client.connect(
            hostname=target.host,
            port=target.port,
            username=target.user,
            key_filename=target.key_path,
            look_for_keys=False,
            allow_agent=False,
            timeout=CONNECT_TIMEOUT,
        )
    except SSHConnectError:
        client.close()
        raise
    except (paramiko.SSHException, OSError) as e:
        client.close()
        raise SSHConnectError(f"failed to connect to {target.host}:{target.port}: {e}") from e
    return client


def run_command(client: paramiko.SSHClient, command: str) -> str:
    """Run one command and return its combined stdout+stderr, trimmed.

    Not bounded by a timeout of its own; a hung command holds the caller.
    """
    try:
        _, stdout, stderr = client.exec_command(command)
        raw = stdout.read() + stderr.read()
        exit_status = stdout.channel.recv_exit_status()
        output = raw.decode("utf-8", errors="replace").strip()
    except (paramiko.SSHException, OSError) as e:
        raise SSHCommandError(f"failed to run command: {e}") from e

    if exit_status != 0:
        raise SSHCommandError(f"command exited with status {exit_status}: {output}")
    return output


def run_remote(target: SSHTarget, command: str) -> str:
    """Connect, run a single command and disconnect (blocking)."""
    client = connect(target)
    try:
        return run_command(client, command)
    finally:
        client.close()
