"""Peer replica: pull cache items from another install of this tool over ssh.

The peer serialises its cache as one JSON object per line
(``{"timestamp": ..., "text": ...}``) on stdout.  After any new items are
stored locally the peer is told to clear its cache.  Only one ssh session
per remote host is in flight at a time within this process.
"""

from __future__ import annotations

import logging
import subprocess
from urllib.parse import urlparse

from pydantic import ValidationError

from diary_sync.core.locks import KeyedLocks
from diary_sync.errors import ParseError, TransportError
from diary_sync.retry import transport_retry
from diary_sync.store.cache import CacheStore
from diary_sync.store.models import CacheItem, format_timestamp

from .models import SyncAction, SyncResult

logger = logging.getLogger(__name__)

DEFAULT_SERIALIZE_COMMAND = "/usr/bin/diary-sync ser"
DEFAULT_CLEAR_COMMAND = "/usr/bin/diary-sync clear"

_HOST_LOCKS = KeyedLocks()


def parse_cache_line(line: str) -> CacheItem:
    """Parse one peer protocol line.

    Raises:
        ParseError: If the line is not a valid cache item.
    """
    try:
        return CacheItem.model_validate_json(line)
    except ValidationError as exc:
        raise ParseError(f"Bad cache line {line[:60]!r}: {exc}") from exc


class SSHInstance:
    """A remote host reachable with the system ``ssh`` client."""

    def __init__(
        self, user: str, host: str, port: int = 22, timeout: float = 120.0
    ) -> None:
        self.user = user
        self.host = host
        self.port = port
        self.timeout = timeout

    @classmethod
    def from_url(cls, url: str) -> SSHInstance | None:
        """Build from ``ssh://user@host[:port]``; ``None`` for other schemes."""
        parsed = urlparse(url)
        if parsed.scheme != "ssh" or not parsed.hostname:
            return None
        return cls(parsed.username or "", parsed.hostname, parsed.port or 22)

    def ssh_args(self) -> list[str]:
        user_host = f"{self.user}@{self.host}" if self.user else self.host
        if self.port == 22:
            return [user_host]
        return ["-p", str(self.port), user_host]

    def _run(self, cmd: str) -> subprocess.CompletedProcess:
        args = ["ssh", *self.ssh_args(), cmd]
        with _HOST_LOCKS.hold(self.host):
            logger.debug("ssh %s: %s", self.host, cmd)
            try:
                result = subprocess.run(
                    args, capture_output=True, timeout=self.timeout, check=False
                )
            except (OSError, subprocess.TimeoutExpired) as exc:
                raise TransportError(f"ssh {self.host} failed: {exc}") from exc
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise TransportError(
                f"ssh {self.host} '{cmd}' exited {result.returncode}: {stderr}"
            )
        return result

    @transport_retry()
    def run_command_stream_stdout(self, cmd: str) -> list[str]:
        """Run *cmd* remotely and return its stdout split into lines.

        Raises:
            TransportError: If ssh fails or the command exits non-zero.
            ParseError: If the output is not UTF-8.
        """
        result = self._run(cmd)
        try:
            stdout = result.stdout.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"ssh {self.host} output is not UTF-8") from exc
        if not stdout:
            return []
        return stdout.split("\n")

    def run_command_ssh(self, cmd: str) -> None:
        """Run *cmd* remotely, discarding its output.  Never retried."""
        self._run(cmd)


class PeerReplica:
    """Pull the cache of a remote peer into the local cache store.

    Args:
        ssh_url: ``ssh://user@host[:port]``.  Any other scheme leaves the
            peer unreachable and ``sync_ssh`` does nothing.
        cache: Local cache store.
        serialize_command: Remote command printing the peer's cache.
        clear_command: Remote command emptying the peer's cache.
    """

    def __init__(
        self,
        ssh_url: str | None,
        cache: CacheStore,
        serialize_command: str = DEFAULT_SERIALIZE_COMMAND,
        clear_command: str = DEFAULT_CLEAR_COMMAND,
    ) -> None:
        self.ssh_url = ssh_url
        self._cache = cache
        self._serialize_command = serialize_command
        self._clear_command = clear_command

    @property
    def reachable(self) -> bool:
        return bool(self.ssh_url) and SSHInstance.from_url(self.ssh_url) is not None

    def sync_ssh(self) -> list[SyncResult]:
        """Store every peer cache item not already held locally.

        Malformed lines are logged and skipped.  The peer's cache is
        cleared only when at least one item was stored.
        """
        if not self.ssh_url:
            return []
        ssh = SSHInstance.from_url(self.ssh_url)
        if ssh is None:
            logger.info("Peer %s is not an ssh URL, skipping", self.ssh_url)
            return []

        known = self._cache.timestamps()
        inserted: list[CacheItem] = []
        for line in ssh.run_command_stream_stdout(self._serialize_command):
            if not line.strip():
                continue
            try:
                item = parse_cache_line(line)
            except ParseError as exc:
                logger.warning("Skipping peer line: %s", exc)
                continue
            if item.timestamp in known:
                continue
            if self._cache.add(item):
                known.add(item.timestamp)
                inserted.append(item)

        if inserted:
            ssh.run_command_ssh(self._clear_command)
            logger.info("Pulled %d cache items from %s", len(inserted), ssh.host)
        return [
            SyncResult(
                action=SyncAction.PEER_PULL,
                key=format_timestamp(item.timestamp),
            )
            for item in inserted
        ]
