"""Deferred deletion of job temp files."""
import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Protocol

logger = logging.getLogger(__name__)


class ScheduledHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a callable once after a delay in seconds."""

    def schedule_once(self, action: Callable[[], None], delay: float) -> ScheduledHandle: ...


class AsyncioScheduler:
    """Scheduler backed by the running event loop's timers."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def schedule_once(self, action: Callable[[], None], delay: float) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(delay, 0), action)


def delete_paths(paths: Iterable[str | Path]) -> List[Path]:
    """
    Delete each path, logging instead of raising.

    Returns:
        Paths actually removed
    """
    removed = []
    for path in paths:
        path = Path(path)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug(f"Already gone: {path}")
        except OSError as e:
            logger.warning(f"Could not delete {path}: {e}")
        else:
            removed.append(path)
            logger.info(f"Cleaned up file: {path}")
    return removed


class RetentionScheduler:
    """Deletes job files once their grace window has elapsed."""

    def __init__(self, scheduler: Scheduler = None):
        self.scheduler = scheduler or AsyncioScheduler()
        self._pending: Dict[int, tuple] = {}
        self._next_id = 0

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def schedule(self, paths: Iterable[str | Path], delay: float) -> int:
        """
        Delete `paths` after `delay` seconds.

        Never raises for filesystem problems: the caller has usually already
        sent its response.

        Returns:
            Ticket id for the scheduled deletion
        """
        paths = tuple(Path(p) for p in paths)
        ticket = self._next_id
        self._next_id += 1

        def _run():
            if self._pending.pop(ticket, None) is None:
                return
            delete_paths(paths)

        handle = self.scheduler.schedule_once(_run, delay)
        self._pending[ticket] = (handle, paths)
        logger.debug(f"Scheduled deletion of {len(paths)} file(s) in {delay:.0f}s")
        return ticket

    def flush(self) -> int:
        """Run every pending deletion now. Used at shutdown."""
        pending = list(self._pending.values())
        self._pending.clear()

        count = 0
        for handle, paths in pending:
            handle.cancel()
            count += len(delete_paths(paths))
        if pending:
            logger.info(f"Flushed {len(pending)} pending cleanup(s), {count} file(s) removed")
        return count
