"""Shared fixtures and fakes."""
from pathlib import Path

import pytest

from splicer.config import Settings
from splicer.utils.ffmpeg import EngineError


class _ScheduledEntry:
    def __init__(self, due: float, action):
        self.due = due
        self.action = action
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler driven by a fake clock."""

    def __init__(self):
        self.now = 0.0
        self.entries = []

    def schedule_once(self, action, delay):
        entry = _ScheduledEntry(self.now + delay, action)
        self.entries.append(entry)
        return entry

    @property
    def delays(self):
        return [entry.due - self.now for entry in self.entries if not entry.cancelled]

    def advance(self, seconds: float):
        self.now += seconds
        due = [e for e in self.entries if e.due <= self.now and not e.cancelled]
        for entry in due:
            self.entries.remove(entry)
            entry.action()


class FakeEngine:
    """Stands in for FFmpegEngine; records calls and writes a dummy output."""

    def __init__(self, error: Exception = None, write_output: bool = True):
        self.error = error
        self.write_output = write_output
        self.calls = []

    async def run(self, input_path, output_path, spec, total_duration, listener=None):
        self.calls.append({
            "input_path": Path(input_path),
            "output_path": Path(output_path),
            "spec": spec,
            "total_duration": total_duration,
        })
        if self.error:
            if self.write_output:
                Path(output_path).parent.mkdir(parents=True, exist_ok=True)
                Path(output_path).write_bytes(b"partial")
            raise self.error
        if self.write_output:
            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            Path(output_path).write_bytes(b"\x00\x00\x00\x18ftypmp42 fake video")


@pytest.fixture
def test_settings(tmp_path):
    """Settings pointing every working directory into tmp_path."""
    return Settings(
        _env_file=None,
        upload_dir=tmp_path / "uploads",
        processed_dir=tmp_path / "processed",
        tmp_dir=tmp_path / "tmp",
    )


@pytest.fixture
def manual_scheduler():
    return ManualScheduler()


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def failing_engine():
    return FakeEngine(error=EngineError(1, "Invalid data found when processing input"))


@pytest.fixture
def make_engine():
    return FakeEngine
