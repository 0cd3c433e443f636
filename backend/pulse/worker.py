# backend/pulse/worker.py
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from .classifier import classify_video
from .ffmpeg_utils import ProbeResult, probe_video
from .models import SensitivityStatus, Video, VideoStatus
from .progress import ProgressHub
from .repository import VideoRepository
from .storage import LocalStorage

logger = logging.getLogger(__name__)

# Progress values surfaced to clients, in order. UI progress bars rely on them.
PROGRESS_STEPS = (10, 30, 60, 80, 100)

FAILURE_MESSAGE = "Processing failed"

Prober = Callable[[object], Awaitable[ProbeResult]]


class ProcessingError(Exception):
    pass


async def _persist(repository: VideoRepository, video: Video, **fields) -> Video:
    updated = await asyncio.to_thread(repository.update_fields, video.id, video.tenant_id, **fields)
    if updated is None:
        raise ProcessingError(f"video {video.id} is no longer processing")
    return updated


async def process_video(
    video: Video,
    *,
    repository: VideoRepository,
    storage: LocalStorage,
    hub: ProgressHub,
    step_seconds: float = 0.8,
    probe: Prober = probe_video,
    classify: Callable[[Video], SensitivityStatus] = classify_video,
) -> None:
    """Drive one upload from processing to completed or failed.

    Every progress value is written before it is published, so clients that
    poll the record never see it run behind the events. Errors end the run in
    the failed state; nothing here propagates to the caller.
    """
    logger.info("processing video %s (%d bytes)", video.id, video.size_bytes)
    try:
        result = await probe(storage.path(video.storage_name))
        if result.duration_seconds is not None:
            await _persist(repository, video, duration_seconds=result.duration_seconds)

        for progress in PROGRESS_STEPS:
            await asyncio.sleep(step_seconds)  # stand-in for encode/scan work
            await _persist(repository, video, progress=progress)
            hub.publish(video.id, progress)

        sensitivity = classify(video)
        await _persist(
            repository,
            video,
            status=VideoStatus.COMPLETED,
            sensitivity_status=sensitivity,
            progress=100,
        )
        hub.publish(video.id, 100, {"done": True, "sensitivityStatus": sensitivity.value})
        logger.info("video %s completed as %s", video.id, sensitivity.value)

    except Exception:
        logger.exception("processing failed for video %s", video.id)
        try:
            await asyncio.to_thread(
                repository.update_fields,
                video.id,
                video.tenant_id,
                status=VideoStatus.FAILED,
                sensitivity_status=SensitivityStatus.PENDING,
                progress=0,
            )
        except Exception:
            logger.exception("could not record failure for video %s", video.id)
        hub.publish(video.id, 0, {"error": FAILURE_MESSAGE})


class ProcessingScheduler:
    """Starts pipeline runs as detached tasks on the running event loop.

    Only a strong reference is kept so the task is not garbage collected
    mid-run; callers never await it.
    """

    def __init__(self, runner: Callable[[Video], Awaitable[None]]):
        self._runner = runner
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, video: Video) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(
            self._runner(video), name=f"process-video-{video.id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight runs without cancelling them; True once none are left."""
        if self._tasks:
            await asyncio.wait(list(self._tasks), timeout=timeout)
        return not self._tasks
