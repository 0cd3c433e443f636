# backend/pulse/ffmpeg_utils.py
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    duration_seconds: Optional[int] = None


async def run_cmd(cmd: List[str], timeout: Optional[float] = None) -> Tuple[int, str, str]:
    proc = await asyncio.create_subprocess_exec(
        *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return proc.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")


def parse_duration(ffprobe_json: str) -> Optional[int]:
    """Container duration from `ffprobe -show_format -of json` output, rounded to seconds."""
    data = json.loads(ffprobe_json)
    raw = (data.get("format") or {}).get("duration")
    if raw in (None, "", "N/A"):
        return None
    return int(round(float(raw)))


async def probe_video(path, ffprobe: str = "ffprobe", timeout: Optional[float] = 30.0) -> ProbeResult:
    """Best-effort metadata extraction. Never raises: failures give a null duration."""
    cmd = [
        ffprobe, "-v", "error",
        "-show_entries", "format=duration",
        "-of", "json",
        str(path),
    ]
    try:
        code, stdout, stderr = await run_cmd(cmd, timeout=timeout)
        if code != 0:
            logger.warning("ffprobe exited %s for %s: %s", code, path, stderr.strip()[:200])
            return ProbeResult()
        return ProbeResult(duration_seconds=parse_duration(stdout))
    except Exception as exc:  # missing binary, timeout, garbage output
        logger.warning("ffprobe failed for %s: %r", path, exc)
        return ProbeResult()
