"""FFmpeg subprocess invocation."""
import asyncio
import enum
import logging
import shlex
import shutil
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from splicer.config import Settings, settings as default_settings
from splicer.pipeline.filter_graph import (
    FilterSpec,
    build_input_args,
    build_output_args,
)

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 20


class EngineError(Exception):
    """FFmpeg exited unsuccessfully or could not be run."""

    def __init__(self, exit_code: Optional[int], stderr_tail: str = "", message: str = None):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        if message is None:
            message = f"ffmpeg exited with code {exit_code}"
        super().__init__(message)


class EngineEventType(str, enum.Enum):
    """Lifecycle notifications emitted while ffmpeg runs."""
    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class EngineEvent:
    type: EngineEventType
    command_line: Optional[str] = None
    percent: float = 0.0
    message: Optional[str] = None


EventListener = Callable[[EngineEvent], Awaitable[None]]


async def log_engine_event(event: EngineEvent) -> None:
    """Default listener: log every event."""
    if event.type == EngineEventType.STARTED:
        command = event.command_line or ""
        if len(command) > 200:
            command = command[:200] + "..."
        logger.info(f"FFmpeg command: {command}")
    elif event.type == EngineEventType.PROGRESS:
        logger.info(f"Progress: {round(event.percent)}%")
    elif event.type == EngineEventType.COMPLETED:
        logger.info("FFmpeg finished successfully")
    else:
        logger.error(f"FFmpeg error: {event.message}")


async def notify(listener: EventListener, event: EngineEvent) -> None:
    """Deliver an event; listener failures never reach the caller."""
    try:
        await listener(event)
    except Exception as e:
        logger.warning(f"Engine event listener failed on {event.type.value}: {e}")


def check_ffmpeg_available(config: Settings = None) -> bool:
    """Check if ffmpeg is available."""
    config = config or default_settings
    return shutil.which(config.ffmpeg_path) is not None


def build_command(
    input_path: str | Path,
    output_path: str | Path,
    spec: FilterSpec,
    config: Settings = None
) -> List[str]:
    """
    Build the full ffmpeg argument list for one job.

    Args:
        input_path: Uploaded source video
        output_path: Where the spliced video is written
        spec: TrimSpec or FilterGraph from build_filter_spec
        config: Settings carrying the binary path and codec policy

    Returns:
        Argument vector ready for create_subprocess_exec
    """
    config = config or default_settings
    return [
        config.ffmpeg_path,
        "-y",
        "-hide_banner",
        "-nostdin",
        *build_input_args(spec, str(input_path)),
        *build_output_args(spec, config),
        "-progress", "pipe:1",
        "-nostats",
        str(output_path),
    ]


def parse_progress_line(line: str, total_duration: float) -> Optional[float]:
    """
    Read a percentage from one `-progress` key=value line.

    Returns None for lines that carry no output timestamp. Values ffmpeg
    reports as N/A, or a non-positive total, count as 0%.
    """
    key, sep, value = line.strip().partition("=")
    if not sep or key not in ("out_time_ms", "out_time_us"):
        return None
    try:
        # both keys are microseconds despite the name
        out_time_s = int(value) / 1_000_000
    except ValueError:
        return 0.0
    if total_duration <= 0:
        return 0.0
    return max(0.0, min(100.0, (out_time_s / total_duration) * 100))


class EngineRun:
    """Handle on one running ffmpeg process."""

    def __init__(
        self,
        proc: asyncio.subprocess.Process,
        command: List[str],
        total_duration: float,
        listener: EventListener,
        timeout: Optional[float] = None
    ):
        self.proc = proc
        self.command = command
        self.total_duration = total_duration
        self._listener = listener
        self._timeout = timeout
        self._stderr_tail: deque = deque(maxlen=STDERR_TAIL_LINES)
        self._cancelled = False
        self._task: Optional[asyncio.Task] = None

    @property
    def pid(self) -> int:
        return self.proc.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.proc.returncode

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    def cancel(self) -> None:
        """Kill the process; wait() then raises EngineError."""
        self._cancelled = True
        self._kill()

    def begin(self) -> None:
        """Start reading ffmpeg output in the background."""
        if self._task is None:
            self._task = asyncio.create_task(self._supervise())

    async def wait(self) -> None:
        """Resolve when ffmpeg exits 0, raise EngineError otherwise."""
        self.begin()
        await self._task

    def _kill(self) -> None:
        if self.proc.returncode is None:
            try:
                self.proc.kill()
            except ProcessLookupError:
                pass

    async def _emit(self, event: EngineEvent) -> None:
        await notify(self._listener, event)

    async def _read_progress(self) -> None:
        last_progress = 0.0
        while True:
            line = await self.proc.stdout.readline()
            if not line:
                break

            percent = parse_progress_line(line.decode("utf-8", errors="ignore"), self.total_duration)
            if percent is not None and percent - last_progress >= 1:
                await self._emit(EngineEvent(EngineEventType.PROGRESS, percent=percent))
                last_progress = percent

    async def _read_stderr(self) -> None:
        while True:
            line = await self.proc.stderr.readline()
            if not line:
                break
            text = line.decode("utf-8", errors="ignore").rstrip()
            if text:
                self._stderr_tail.append(text)

    async def _drain(self) -> int:
        await asyncio.gather(self._read_progress(), self._read_stderr())
        return await self.proc.wait()

    async def _supervise(self) -> None:
        try:
            returncode = await asyncio.wait_for(self._drain(), timeout=self._timeout)
        except asyncio.CancelledError:
            self._kill()
            # reap the killed process even though this task is being cancelled
            await asyncio.shield(self.proc.wait())
            raise
        except asyncio.TimeoutError:
            self._kill()
            await self.proc.wait()
            error = EngineError(
                None,
                self.stderr_tail,
                f"ffmpeg timed out after {self._timeout:.0f}s"
            )
            await self._emit(EngineEvent(EngineEventType.FAILED, message=str(error)))
            raise error

        if returncode != 0:
            message = "ffmpeg cancelled" if self._cancelled else None
            error = EngineError(returncode, self.stderr_tail, message)
            await self._emit(EngineEvent(EngineEventType.FAILED, message=str(error)))
            raise error

        await self._emit(EngineEvent(EngineEventType.COMPLETED))


class FFmpegEngine:
    """Runs one ffmpeg process per job. Holds no per-job state."""

    def __init__(self, config: Settings = None, listener: EventListener = None):
        self.config = config or default_settings
        self.listener = listener or log_engine_event

    async def start(
        self,
        input_path: str | Path,
        output_path: str | Path,
        spec: FilterSpec,
        total_duration: float,
        listener: EventListener = None
    ) -> EngineRun:
        """
        Spawn ffmpeg for one job.

        Raises:
            EngineError: If the ffmpeg binary cannot be executed
        """
        listener = listener or self.listener
        cmd = build_command(input_path, output_path, spec, self.config)

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            error = EngineError(None, "", f"Could not start ffmpeg: {e}")
            await notify(listener, EngineEvent(EngineEventType.FAILED, message=str(error)))
            raise error from e

        run = EngineRun(
            proc,
            cmd,
            total_duration,
            listener,
            timeout=self.config.engine_timeout_seconds
        )
        await notify(listener, EngineEvent(EngineEventType.STARTED, command_line=shlex.join(cmd)))
        run.begin()
        return run

    async def run(
        self,
        input_path: str | Path,
        output_path: str | Path,
        spec: FilterSpec,
        total_duration: float,
        listener: EventListener = None
    ) -> None:
        """Start ffmpeg and wait for it to finish."""
        run = await self.start(input_path, output_path, spec, total_duration, listener)
        await run.wait()
