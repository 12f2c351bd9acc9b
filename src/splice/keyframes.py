"""Keyframe evaluation — per-property animation curves.

A keyframe sequence is a time-sorted list of Keyframe objects for one
animatable property. Each keyframe carries the easing used on the way to
the NEXT keyframe. Evaluation is a pure function of (keyframes, time,
fallback) so the preview and the export call it identically.

Hold policy:
  - No keyframes: the fallback (the clip's static value).
  - Before the first keyframe: the first value.
  - At or after the last keyframe: the last value.
"""

from bisect import bisect_right
from dataclasses import dataclass


# ── Easing curves ─────────────────────────────────────────────────
# Quadratic curves on t in [0, 1]. All map 0 -> 0 and 1 -> 1.


def _ease_linear(t: float) -> float:
    return t


def _ease_in(t: float) -> float:
    return t * t


def _ease_out(t: float) -> float:
    return t * (2 - t)


def _ease_in_out(t: float) -> float:
    if t < 0.5:
        return 2 * t * t
    return -1 + (4 - 2 * t) * t


EASINGS = {
    "linear": _ease_linear,
    "ease-in": _ease_in,
    "ease-out": _ease_out,
    "ease-in-out": _ease_in_out,
}


@dataclass(frozen=True)
class Keyframe:
    """A timestamped value. time is seconds relative to the clip start."""

    id: int
    time: float
    value: float
    easing: str = "linear"


def ease(easing: str, t: float) -> float:
    """Apply a named easing curve to t (clamped to [0, 1])."""
    if easing not in EASINGS:
        raise ValueError(
            f"Unknown easing '{easing}'. Valid: {sorted(EASINGS)}"
        )
    t = max(0.0, min(1.0, t))
    return EASINGS[easing](t)


def evaluate(
    keyframes: list[Keyframe] | None,
    local_time: float,
    fallback: float,
) -> float:
    """Evaluate a keyframe sequence at local_time.

    Locates the bracketing pair (a, b) with a.time <= t < b.time, eases
    the normalized position with a.easing and interpolates a.value ->
    b.value. Where keyframes share a timestamp, the last of them starts
    the next segment.

    Args:
        keyframes: Time-sorted keyframes for one property (may be empty).
        local_time: Seconds since the clip start.
        fallback: Value returned when there are no keyframes.

    Returns:
        The animated value.
    """
    if not keyframes:
        return fallback

    first = keyframes[0]
    last = keyframes[-1]
    if local_time <= first.time:
        return first.value
    if local_time >= last.time:
        return last.value

    times = [kf.time for kf in keyframes]
    i = bisect_right(times, local_time) - 1
    a = keyframes[i]
    b = keyframes[i + 1]
    span = b.time - a.time
    if span <= 0:
        return a.value
    t = ease(a.easing, (local_time - a.time) / span)
    return a.value + (b.value - a.value) * t


def insert_sorted(keyframes: list[Keyframe], keyframe: Keyframe) -> list[Keyframe]:
    """Return a new list with keyframe inserted in time order.

    Equal timestamps keep insertion order (the new keyframe goes last).
    """
    result = list(keyframes)
    times = [kf.time for kf in result]
    result.insert(bisect_right(times, keyframe.time), keyframe)
    return result
