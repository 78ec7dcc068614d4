"""Tests for ProcessInfoGatherer."""

import contextlib
from datetime import datetime

import psutil
import pytest

from portkill.process_info import UNKNOWN_PROCESS, ProcessInfoGatherer, process_start_time

STARTED = datetime(2024, 5, 1, 9, 30, 0)
NODE_EXE = "C:\\Program Files\\nodejs\\node.exe"


class FakeProcess:
    """Stand-in for psutil.Process; values may be exceptions to raise."""

    def __init__(self, pid, name="node.exe", exe=NODE_EXE, create_time=STARTED.timestamp()):
        self.pid = pid
        self._name = name
        self._exe = exe
        self._create_time = create_time

    @contextlib.contextmanager
    def oneshot(self):
        yield

    @staticmethod
    def _value(value):
        if isinstance(value, Exception):
            raise value
        return value

    def name(self):
        return self._value(self._name)

    def exe(self):
        return self._value(self._exe)

    def create_time(self):
        return self._value(self._create_time)


class RecordingClassifier:
    """Classifier double that records its arguments."""

    def __init__(self, protected: bool = False) -> None:
        self.protected = protected
        self.calls = []

    def is_protected(self, pid, name, path=None):
        self.calls.append((pid, name, path))
        return self.protected


def patch_process(monkeypatch, factory):
    monkeypatch.setattr(psutil, "Process", factory)


class TestDescribe:
    """Tests for ProcessInfoGatherer.describe."""

    def test_full_record(self, monkeypatch):
        patch_process(monkeypatch, lambda pid: FakeProcess(pid))
        classifier = RecordingClassifier()

        record = ProcessInfoGatherer(classifier).describe(4521)

        assert record.name == "node.exe"
        assert record.path == NODE_EXE
        assert record.start_time == STARTED
        assert record.is_system_process is False
        assert classifier.calls == [(4521, "node.exe", NODE_EXE)]

    def test_classifier_decides_protection(self, monkeypatch):
        patch_process(monkeypatch, lambda pid: FakeProcess(pid))

        record = ProcessInfoGatherer(RecordingClassifier(protected=True)).describe(4521)

        assert record.is_system_process is True

    @pytest.mark.parametrize(
        "error",
        [psutil.NoSuchProcess(4521), psutil.AccessDenied(4521), ValueError("bad pid")],
    )
    def test_lookup_failure_is_unknown_and_protected(self, monkeypatch, error):
        """Test a failed primary lookup yields a protected Unknown record."""

        def factory(pid):
            raise error

        patch_process(monkeypatch, factory)
        classifier = RecordingClassifier()

        record = ProcessInfoGatherer(classifier).describe(4521)

        assert record == UNKNOWN_PROCESS
        assert record.name == "Unknown"
        assert record.path is None
        assert record.start_time is None
        assert record.is_system_process is True
        assert classifier.calls == []

    def test_name_failure_is_unknown(self, monkeypatch):
        patch_process(monkeypatch, lambda pid: FakeProcess(pid, name=psutil.AccessDenied(pid)))

        assert ProcessInfoGatherer(RecordingClassifier()).describe(4521) == UNKNOWN_PROCESS

    def test_path_denied_falls_back_to_start_time(self, monkeypatch):
        """Test an access-restricted path still yields a start time and classification."""
        patch_process(monkeypatch, lambda pid: FakeProcess(pid, exe=psutil.AccessDenied(pid)))
        classifier = RecordingClassifier()

        record = ProcessInfoGatherer(classifier).describe(4521)

        assert record.name == "node.exe"
        assert record.path is None
        assert record.start_time == STARTED
        assert classifier.calls == [(4521, "node.exe", None)]

    def test_path_and_start_time_denied(self, monkeypatch):
        patch_process(
            monkeypatch,
            lambda pid: FakeProcess(
                pid, exe=psutil.AccessDenied(pid), create_time=psutil.AccessDenied(pid)
            ),
        )

        record = ProcessInfoGatherer(RecordingClassifier()).describe(4521)

        assert record.path is None
        assert record.start_time is None

    def test_process_exits_mid_lookup(self, monkeypatch):
        patch_process(monkeypatch, lambda pid: FakeProcess(pid, exe=psutil.NoSuchProcess(pid)))

        assert ProcessInfoGatherer(RecordingClassifier()).describe(4521) == UNKNOWN_PROCESS

    def test_records_are_not_cached(self, monkeypatch):
        """Test every call reflects the current process table."""
        names = iter(["node.exe", "python.exe"])
        patch_process(monkeypatch, lambda pid: FakeProcess(pid, name=next(names)))
        gatherer = ProcessInfoGatherer(RecordingClassifier())

        assert gatherer.describe(4521).name == "node.exe"
        assert gatherer.describe(4521).name == "python.exe"


def test_process_start_time(monkeypatch):
    patch_process(monkeypatch, lambda pid: FakeProcess(pid))

    assert process_start_time(4521) == STARTED


def test_process_start_time_unavailable(monkeypatch):
    def factory(pid):
        raise psutil.NoSuchProcess(pid)

    patch_process(monkeypatch, factory)

    assert process_start_time(4521) is None
