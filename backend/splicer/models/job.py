"""Job model for one video processing request."""
import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional


class JobStatus(str, enum.Enum):
    """Job status enumeration."""
    VALIDATING = "validating"
    PROCESSING = "processing"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATUSES = (JobStatus.DONE, JobStatus.FAILED)


@dataclass
class Job:
    """
    Mutable state of one request.

    Owned by the request that created it and never shared, so no locking.
    `output_path` is set once the output name is allocated.
    """
    input_path: Path
    output_path: Optional[Path] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    status: JobStatus = JobStatus.VALIDATING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None
    cleanup_scheduled: bool = False

    def __repr__(self):
        return f"<Job(id={self.id}, status={self.status.value})>"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def elapsed_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self.created_at).total_seconds()

    @property
    def paths(self) -> List[Path]:
        return [p for p in (self.input_path, self.output_path) if p is not None]
