# backend/pulse/streaming.py
"""Byte-range serving of stored videos for seekable playback."""
import re
from typing import Optional, Tuple

from fastapi.responses import FileResponse, Response, StreamingResponse

from .storage import LocalStorage

_RANGE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$")


class RangeNotSatisfiable(Exception):
    def __init__(self, total: int):
        super().__init__(f"Requested range not satisfiable for {total} bytes")
        self.total = total


def parse_range(header: str, total: int) -> Tuple[int, int]:
    """Parse `bytes=start-end` into an inclusive (start, end) pair.

    A missing end means the last byte, an end past the file is clamped and
    `bytes=-N` selects the final N bytes. Only the first range of a
    multi-range header is honoured.
    """
    match = _RANGE.match(header.split(",")[0])
    if not match or total <= 0:
        raise RangeNotSatisfiable(total)
    first, last = match.groups()
    if not first and not last:
        raise RangeNotSatisfiable(total)

    if not first:
        length = int(last)
        if length == 0:
            raise RangeNotSatisfiable(total)
        start, end = max(total - length, 0), total - 1
    else:
        start = int(first)
        end = min(int(last), total - 1) if last else total - 1

    if start >= total or start > end:
        raise RangeNotSatisfiable(total)
    return start, end


def stream_video(
    storage: LocalStorage, storage_name: str, media_type: str, range_header: Optional[str] = None
) -> Response:
    total = storage.size(storage_name)

    if not range_header:
        return FileResponse(
            path=storage.path(storage_name),
            media_type=media_type,
            headers={"Accept-Ranges": "bytes"},
        )

    try:
        start, end = parse_range(range_header, total)
    except RangeNotSatisfiable:
        return Response(
            status_code=416,
            headers={"Content-Range": f"bytes */{total}", "Accept-Ranges": "bytes"},
        )

    return StreamingResponse(
        storage.iter_range(storage_name, start, end),
        status_code=206,
        media_type=media_type,
        headers={
            "Content-Range": f"bytes {start}-{end}/{total}",
            "Accept-Ranges": "bytes",
            "Content-Length": str(end - start + 1),
        },
    )
