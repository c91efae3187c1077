"""End-to-end lifecycle of one video processing request."""
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from splicer.config import Settings, settings as default_settings
from splicer.models.job import Job, JobStatus
from splicer.pipeline.filter_graph import TrimSpec, build_filter_spec
from splicer.pipeline.segments import parse_segments_payload, validate_segments
from splicer.services.storage_service import StoredUpload, unique_output_name
from splicer.utils.ffmpeg import EngineError, FFmpegEngine
from splicer.workers.retention import RetentionScheduler

logger = logging.getLogger(__name__)


@dataclass
class ProcessedVideo:
    """Successful engine output, ready to stream."""
    job: Job
    filename: str
    size: int

    @property
    def path(self) -> Path:
        return self.job.output_path


class JobService:
    """
    Drives a job through validation, filter building, ffmpeg and streaming.

    Every terminal transition schedules cleanup exactly once: a short grace
    window on failure, a long one after a successful download.
    """

    def __init__(
        self,
        engine: FFmpegEngine = None,
        retention: RetentionScheduler = None,
        config: Settings = None
    ):
        self.config = config or default_settings
        self.engine = engine or FFmpegEngine(self.config)
        self.retention = retention or RetentionScheduler()

    async def process(self, upload: StoredUpload, segments_payload: Optional[str]) -> ProcessedVideo:
        """
        Validate segments and run ffmpeg on a stored upload.

        Args:
            upload: File already written to the uploads directory
            segments_payload: Raw JSON text of the `segments` form field

        Returns:
            ProcessedVideo in STREAMING state

        Raises:
            ValidationError: No usable segment; input is cleaned up. Any other
                error before ffmpeg starts also cleans up the input.
            EngineError: ffmpeg failed or produced nothing; both files are cleaned up
        """
        job = Job(input_path=upload.path)
        logger.info(f"[{job.id}] New processing request")
        logger.info(f"[{job.id}] File received: {upload.original_name}")
        logger.info(f"[{job.id}] Size: {upload.size_mb:.2f} MB")

        # Validating, Building
        try:
            raw = parse_segments_payload(segments_payload)
            if isinstance(raw, list):
                logger.info(f"[{job.id}] Segments submitted: {len(raw)}")
            segments = validate_segments(raw)
            logger.info(f"[{job.id}] Segments validated: {len(segments)}")
            spec = build_filter_spec(segments)
        except Exception as e:
            # Only the input exists at this point
            self.fail(job, e, paths=[job.input_path])
            raise

        if isinstance(spec, TrimSpec):
            logger.info(f"[{job.id}] Single segment: {spec.start}s - {spec.start + spec.duration}s")
        else:
            logger.info(f"[{job.id}] Multi-segment graph over {len(segments)} segments")

        # Processing
        filename = unique_output_name()
        job.output_path = self.config.processed_dir / filename
        job.status = JobStatus.PROCESSING
        try:
            await self.engine.run(
                job.input_path,
                job.output_path,
                spec,
                segments.total_duration
            )
            if not job.output_path.exists():
                raise EngineError(0, "", "output file was not generated")
            size = job.output_path.stat().st_size
        except (Exception, asyncio.CancelledError) as e:
            if isinstance(e, EngineError) and e.stderr_tail:
                logger.error(f"[{job.id}] FFmpeg stderr tail:\n{e.stderr_tail}")
            self.fail(job, e)
            raise

        job.status = JobStatus.STREAMING
        logger.info(f"[{job.id}] Processing succeeded:")
        logger.info(f"[{job.id}] - Processing time: {job.elapsed_seconds:.2f}s")
        logger.info(f"[{job.id}] - Output size: {size / (1024 * 1024):.2f} MB")

        return ProcessedVideo(job=job, filename=filename, size=size)

    def finish_streaming(self, job: Job) -> None:
        """Output fully sent: keep files for the success grace window."""
        job.status = JobStatus.DONE
        logger.info(f"[{job.id}] Download sent")
        self._schedule_cleanup(job, job.paths, self.config.success_retention_seconds)

    def fail_streaming(self, job: Job, error: BaseException) -> None:
        """Sending the output failed midway."""
        if job.is_terminal:
            logger.warning(f"[{job.id}] Late send error after {job.status.value}: {error}")
            return
        logger.error(f"[{job.id}] Error sending file: {error}")
        self.fail(job, error)

    def fail(self, job: Job, error: BaseException, paths: List[Path] = None) -> None:
        """Mark the job failed and clean up after the short grace window."""
        job.status = JobStatus.FAILED
        job.error = str(error)
        logger.error(f"[{job.id}] Processing failed after {job.elapsed_seconds:.2f}s: {error}")
        self._schedule_cleanup(
            job,
            paths if paths is not None else job.paths,
            self.config.failure_retention_seconds
        )

    def _schedule_cleanup(self, job: Job, paths: List[Path], delay: float) -> None:
        if job.cleanup_scheduled:
            logger.debug(f"[{job.id}] Cleanup already scheduled")
            return
        job.cleanup_scheduled = True
        self.retention.schedule(paths, delay)
