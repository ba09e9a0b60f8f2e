"""
Interval arithmetic on ``TimeWindow`` sequences.

Pure functions, no I/O. Everything else in the package goes through these
helpers instead of doing its own hour/minute math.
"""

from typing import Iterable, List

from .models import TimeWindow


def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
    """Half-open overlap test: a window ending at 10:00 and one starting at 10:00 are compatible."""
    return a.overlaps(b)


def coalesce(windows: Iterable[TimeWindow]) -> List[TimeWindow]:
    """
    Merge overlapping or touching windows.

    Example: [09:00-10:00, 10:00-11:00, 10:30-12:00] -> [09:00-12:00]

    The result is sorted by start, non-overlapping and minimal. The zone of
    the first window of each merged run is kept.
    """
    sorted_windows = sorted(windows, key=lambda w: (w.start, w.end))
    if not sorted_windows:
        return []

    merged: List[TimeWindow] = [sorted_windows[0]]

    for current in sorted_windows[1:]:
        last = merged[-1]

        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = TimeWindow(
                    start=last.start,
                    end=current.end,
                    source_zone=last.source_zone,
                )
        else:
            merged.append(current)

    return merged


def subtract(base: TimeWindow, busy: Iterable[TimeWindow]) -> List[TimeWindow]:
    """
    Remove every busy window's intersection from ``base``.

    Example:
    Base: 09:00 - 17:00
    Busy: [10:00-11:00, 14:00-15:00]
    Result: [09:00-10:00, 11:00-14:00, 15:00-17:00]

    Busy windows may contain ``base``, sit inside it, clip either edge or
    miss it entirely. The returned sub-windows keep ``base.source_zone``.
    """
    free: List[TimeWindow] = []
    cursor = base.start

    for window in sorted(busy, key=lambda w: w.start):
        if not window.overlaps(base):
            continue

        clipped_start = max(window.start, base.start)
        clipped_end = min(window.end, base.end)

        if cursor < clipped_start:
            free.append(TimeWindow(start=cursor, end=clipped_start, source_zone=base.source_zone))

        cursor = max(cursor, clipped_end)
        if cursor >= base.end:
            break

    if cursor < base.end:
        free.append(TimeWindow(start=cursor, end=base.end, source_zone=base.source_zone))

    return free


def pad_all(windows: Iterable[TimeWindow], before_minutes: int, after_minutes: int) -> List[TimeWindow]:
    """
    Widen windows by buffers and coalesce the result.

    Returns the input coalesced when both buffers are zero.
    """
    if not before_minutes and not after_minutes:
        return coalesce(windows)
    return coalesce(w.padded(before_minutes, after_minutes) for w in windows)
