"""Tests for netstat invocation and owner parsing."""

import subprocess

import pytest

from portkill.config import Settings
from portkill.models import Protocol
from portkill.netstat import NetstatRunner, OwnerResolver, parse_owner_pid

NETSTAT_OUTPUT = """
Active Connections

  Proto  Local Address          Foreign Address        State           PID
  TCP    0.0.0.0:135            0.0.0.0:0              LISTENING       1044
  TCP    0.0.0.0:8080           0.0.0.0:0              LISTENING       7312
  TCP    127.0.0.1:3000         127.0.0.1:52114        ESTABLISHED     4521
  TCP    [::]:5000              [::]:0                 LISTENING       6120
  UDP    0.0.0.0:5353           *:*                                    2260
  UDP    [::]:5353              *:*                                    2260
"""


class TestParseOwnerPid:
    """Tests for parse_owner_pid."""

    def test_example_row(self):
        """Test the single-row example resolves 3000 but not 300."""
        text = "TCP 0.0.0.0:3000 0.0.0.0:0 LISTENING 4521\n"

        assert parse_owner_pid(text, 3000, Protocol.TCP) == 4521
        assert parse_owner_pid(text, 300, Protocol.TCP) == 0

    def test_port_boundary(self):
        """Test a row for 8080 never satisfies a lookup for 80."""
        assert parse_owner_pid(NETSTAT_OUTPUT, 80, Protocol.TCP) == 0
        assert parse_owner_pid(NETSTAT_OUTPUT, 8080, Protocol.TCP) == 7312

    def test_foreign_port_is_ignored(self):
        """Test an outgoing connection to a remote port never owns that local port."""
        text = (
            "  TCP    192.168.1.5:51000      93.184.216.34:443      ESTABLISHED     7777\n"
            "  TCP    0.0.0.0:443            0.0.0.0:0              LISTENING       4521\n"
        )

        assert parse_owner_pid(text, 443, Protocol.TCP) == 4521

    def test_local_8080_with_remote_80(self):
        """Test a local 8080 row whose remote end is port 80 does not match 80."""
        text = "  TCP    0.0.0.0:8080    10.0.0.2:80    ESTABLISHED    9999\n"

        assert parse_owner_pid(text, 80, Protocol.TCP) == 0
        assert parse_owner_pid(text, 8080, Protocol.TCP) == 9999

    def test_first_match_wins(self):
        assert parse_owner_pid(NETSTAT_OUTPUT, 3000, Protocol.TCP) == 4521

    def test_ipv6_request_matches_base_rows(self):
        """Test TCPv6/UDPv6 lookups match TCP/UDP rows."""
        assert parse_owner_pid(NETSTAT_OUTPUT, 5000, Protocol.TCPv6) == 6120
        assert parse_owner_pid(NETSTAT_OUTPUT, 5353, Protocol.UDPv6) == 2260

    def test_udp_rows_without_state(self):
        """Test UDP rows, which have no state column, still resolve."""
        assert parse_owner_pid(NETSTAT_OUTPUT, 5353, Protocol.UDP) == 2260

    def test_protocol_must_match(self):
        """Test a TCP row is not returned for a UDP lookup and vice versa."""
        assert parse_owner_pid(NETSTAT_OUTPUT, 135, Protocol.UDP) == 0
        assert parse_owner_pid(NETSTAT_OUTPUT, 5353, Protocol.TCP) == 0

    def test_unparseable_pid_skipped(self):
        """Test a row with a bad pid is skipped and scanning continues."""
        text = (
            "TCP 0.0.0.0:3000 0.0.0.0:0 LISTENING abc\n"
            "TCP 0.0.0.0:3000 0.0.0.0:0 LISTENING 0\n"
            "TCP 0.0.0.0:3000 0.0.0.0:0 LISTENING 99\n"
        )
        assert parse_owner_pid(text, 3000, Protocol.TCP) == 99

    def test_windows_line_endings(self):
        text = "  TCP    0.0.0.0:3000    0.0.0.0:0    LISTENING    4521\r\n"
        assert parse_owner_pid(text, 3000, Protocol.TCP) == 4521

    @pytest.mark.parametrize(
        "text",
        ["", "   \n\n", "garbage", "TCP", "TCP 0.0.0.0:3000", "Proto Local Address :3000 PID"],
    )
    def test_malformed_input_returns_zero(self, text):
        """Test malformed or truncated text never raises."""
        assert parse_owner_pid(text, 3000, Protocol.TCP) == 0

    def test_no_match_returns_zero(self):
        assert parse_owner_pid(NETSTAT_OUTPUT, 9999, Protocol.TCP) == 0


class TestNetstatRunner:
    """Tests for NetstatRunner."""

    def test_returns_stdout(self, monkeypatch):
        calls = []

        def fake_run(command, **kwargs):
            calls.append((command, kwargs))
            return subprocess.CompletedProcess(command, 0, stdout=NETSTAT_OUTPUT, stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)

        assert NetstatRunner().run() == NETSTAT_OUTPUT
        assert calls[0][0] == ["netstat", "-ano"]
        assert calls[0][1]["timeout"] == 10.0

    def test_custom_command(self, monkeypatch):
        seen = []

        def fake_run(command, **kwargs):
            seen.append(command)
            return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)
        NetstatRunner(Settings(netstat_command=("netstat", "-an"))).run()

        assert seen == [["netstat", "-an"]]

    def test_missing_executable_returns_empty(self, monkeypatch):
        def fake_run(command, **kwargs):
            raise FileNotFoundError("netstat")

        monkeypatch.setattr(subprocess, "run", fake_run)

        assert NetstatRunner().run() == ""

    def test_timeout_returns_empty(self, monkeypatch):
        def fake_run(command, **kwargs):
            raise subprocess.TimeoutExpired(command, kwargs["timeout"])

        monkeypatch.setattr(subprocess, "run", fake_run)

        assert NetstatRunner().run() == ""

    def test_nonzero_exit_returns_empty(self, monkeypatch):
        def fake_run(command, **kwargs):
            return subprocess.CompletedProcess(command, 1, stdout="partial", stderr="err")

        monkeypatch.setattr(subprocess, "run", fake_run)

        assert NetstatRunner().run() == ""


class FakeRunner:
    """Runner returning canned text and counting invocations."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.calls = 0

    def run(self) -> str:
        self.calls += 1
        return self.text


class TestOwnerResolver:
    """Tests for OwnerResolver."""

    def test_resolve_invokes_runner_without_table(self):
        runner = FakeRunner(NETSTAT_OUTPUT)
        resolver = OwnerResolver(runner)

        assert resolver.resolve_owner(8080, Protocol.TCP) == 7312
        assert runner.calls == 1

    def test_resolve_reuses_snapshot(self):
        runner = FakeRunner(NETSTAT_OUTPUT)
        resolver = OwnerResolver(runner)
        table = resolver.snapshot()

        assert resolver.resolve_owner(8080, Protocol.TCP, table) == 7312
        assert resolver.resolve_owner(5353, Protocol.UDP, table) == 2260
        assert runner.calls == 1

    def test_failed_invocation_means_no_owner(self):
        resolver = OwnerResolver(FakeRunner(""))

        assert resolver.resolve_owner(8080, Protocol.TCP) == 0
