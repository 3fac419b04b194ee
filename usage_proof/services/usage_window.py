"""
Usage window construction from presets or explicit bounds.
"""
import time
from typing import Optional

from usage_proof.core.config import settings
from usage_proof.core.enums import WindowType
from usage_proof.core.models import UsageWindow


def build_usage_window(
    window_type: WindowType,
    now: Optional[int] = None,
    start: Optional[int] = None,
    end: Optional[int] = None
) -> UsageWindow:
    """
    Build a window ending at `now` for presets, or from start/end for custom.

    Raises ValueError for a custom window without bounds or with start >= end.
    """
    window_type = WindowType(window_type)

    if window_type == WindowType.CUSTOM:
        if start is None or end is None:
            raise ValueError("custom window requires both start and end")
        return UsageWindow(type=window_type, start=start, end=end)

    end_ts = int(now if now is not None else time.time())
    return UsageWindow(
        type=window_type,
        start=end_ts - settings.get_window_seconds(window_type.value),
        end=end_ts
    )
