"""Tests for the ssh peer replica.

``subprocess.run`` is patched throughout; no ssh connection is made.
"""

from __future__ import annotations

import datetime as dt
import subprocess
from unittest.mock import patch

import pytest

from diary_sync.errors import ParseError, TransportError
from diary_sync.store.models import CacheItem
from diary_sync.sync.models import SyncAction
from diary_sync.sync.peer import PeerReplica, SSHInstance, parse_cache_line

T1 = dt.datetime(2024, 3, 1, 9, 0, tzinfo=dt.timezone.utc)
T2 = T1 + dt.timedelta(minutes=5)
URL = "ssh://diarist@peer.example:2222"


def _completed(stdout: bytes = b"", returncode: int = 0, stderr: bytes = b""):
    return subprocess.CompletedProcess(
        args=["ssh"], returncode=returncode, stdout=stdout, stderr=stderr
    )


def _lines(*items: CacheItem) -> bytes:
    return ("\n".join(i.to_line() for i in items) + "\n").encode("utf-8")


@pytest.fixture(autouse=True)
def no_retry_sleep(monkeypatch):
    monkeypatch.setattr(
        SSHInstance.run_command_stream_stdout.retry, "sleep", lambda s: None
    )


class TestSSHInstance:
    def test_from_url(self):
        ssh = SSHInstance.from_url(URL)
        assert (ssh.user, ssh.host, ssh.port) == ("diarist", "peer.example", 2222)
        assert ssh.ssh_args() == ["-p", "2222", "diarist@peer.example"]

    def test_default_port(self):
        assert SSHInstance.from_url("ssh://peer.example").ssh_args() == [
            "peer.example"
        ]

    @pytest.mark.parametrize(
        "url", ["http://peer.example", "peer.example", "ssh://", ""]
    )
    def test_non_ssh_urls(self, url):
        assert SSHInstance.from_url(url) is None

    @patch("diary_sync.sync.peer.subprocess.run")
    def test_stream_stdout_splits_lines(self, mock_run):
        mock_run.return_value = _completed(b"a\nb\n")
        ssh = SSHInstance("u", "h")
        assert ssh.run_command_stream_stdout("cmd") == ["a", "b", ""]
        args = mock_run.call_args[0][0]
        assert args == ["ssh", "u@h", "cmd"]
        assert mock_run.call_args[1]["timeout"] == 120.0

    @patch("diary_sync.sync.peer.subprocess.run")
    def test_stream_stdout_retries_transport_errors(self, mock_run):
        mock_run.side_effect = [
            subprocess.TimeoutExpired("ssh", 120),
            _completed(b"ok"),
        ]
        assert SSHInstance("u", "h").run_command_stream_stdout("cmd") == ["ok"]
        assert mock_run.call_count == 2

    @patch("diary_sync.sync.peer.subprocess.run")
    def test_non_zero_exit_is_transport_error(self, mock_run):
        mock_run.return_value = _completed(returncode=255, stderr=b"no route")
        with pytest.raises(TransportError, match="no route"):
            SSHInstance("u", "h").run_command_stream_stdout("cmd")
        assert mock_run.call_count == 4

    @patch("diary_sync.sync.peer.subprocess.run")
    def test_run_command_ssh_is_not_retried(self, mock_run):
        mock_run.return_value = _completed(returncode=1)
        with pytest.raises(TransportError):
            SSHInstance("u", "h").run_command_ssh("clear")
        assert mock_run.call_count == 1

    @patch("diary_sync.sync.peer.subprocess.run")
    def test_non_utf8_output_is_parse_error(self, mock_run):
        mock_run.return_value = _completed(b"\xff\xfe")
        with pytest.raises(ParseError):
            SSHInstance("u", "h").run_command_stream_stdout("cmd")


def test_parse_cache_line_rejects_garbage():
    with pytest.raises(ParseError, match="Bad cache line"):
        parse_cache_line('{"text": "no timestamp"}')


class TestSyncSSH:
    @patch("diary_sync.sync.peer.subprocess.run")
    def test_pulls_new_items_and_clears_peer(self, mock_run, cache):
        items = [CacheItem(timestamp=T1, text="one"), CacheItem(timestamp=T2, text="two")]
        mock_run.side_effect = [_completed(_lines(*items)), _completed()]
        peer = PeerReplica(URL, cache, "remote ser", "remote clear")

        results = peer.sync_ssh()

        assert [r.action for r in results] == [SyncAction.PEER_PULL] * 2
        assert cache.list() == items
        commands = [c[0][0][-1] for c in mock_run.call_args_list]
        assert commands == ["remote ser", "remote clear"]

    @patch("diary_sync.sync.peer.subprocess.run")
    def test_pull_is_idempotent(self, mock_run, cache):
        item = CacheItem(timestamp=T1, text="once")
        mock_run.return_value = _completed(_lines(item))
        peer = PeerReplica(URL, cache)

        peer.sync_ssh()
        results = peer.sync_ssh()

        assert results == []
        assert cache.list() == [item]
        # serialize, clear, serialize (nothing new: no second clear)
        assert mock_run.call_count == 3

    @patch("diary_sync.sync.peer.subprocess.run")
    def test_duplicate_line_in_one_pull_inserted_once(self, mock_run, cache):
        item = CacheItem(timestamp=T1, text="dup")
        mock_run.return_value = _completed(_lines(item, item))
        results = PeerReplica(URL, cache).sync_ssh()
        assert len(results) == 1
        assert len(cache.list()) == 1

    @patch("diary_sync.sync.peer.subprocess.run")
    def test_bad_lines_are_skipped(self, mock_run, cache):
        good = CacheItem(timestamp=T1, text="good")
        mock_run.return_value = _completed(
            b"not json\n" + _lines(good) + b'{"timestamp": "nope", "text": ""}\n'
        )
        results = PeerReplica(URL, cache).sync_ssh()
        assert [r.key for r in results] == ["2024-03-01T09:00:00.000000Z"]

    @patch("diary_sync.sync.peer.subprocess.run")
    def test_empty_peer_cache_does_not_clear(self, mock_run, cache):
        mock_run.return_value = _completed(b"")
        assert PeerReplica(URL, cache).sync_ssh() == []
        assert mock_run.call_count == 1

    @patch("diary_sync.sync.peer.subprocess.run")
    def test_non_ssh_url_is_skipped(self, mock_run, cache):
        peer = PeerReplica("http://peer.example", cache)
        assert peer.reachable is False
        assert peer.sync_ssh() == []
        mock_run.assert_not_called()
