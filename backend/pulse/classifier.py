# backend/pulse/classifier.py
from .models import SensitivityStatus


def classify_video(video) -> SensitivityStatus:
    """Placeholder sensitivity check: even-sized files are safe, odd-sized are flagged.

    Any replacement only needs to accept the video record and return a
    terminal SensitivityStatus.
    """
    if video.size_bytes % 2 == 0:
        return SensitivityStatus.SAFE
    return SensitivityStatus.FLAGGED
