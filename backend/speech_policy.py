"""
Speech policy for vision results.

Decides WHAT to say for one analyzed frame: the nearest object within the
distance limit, plus any visible text. Text is always eligible; objects
beyond the limit are never spoken.
"""

from typing import List, Optional

from models import DetectedObject, VisionResult

MAX_OBJECT_DISTANCE_M = 5.0
MAX_STATUS_OBJECTS = 3


def nearby_objects(
    objects: List[DetectedObject],
    max_distance_m: float = MAX_OBJECT_DISTANCE_M
) -> List[DetectedObject]:
    """Objects at or within the limit, nearest first (stable for ties)."""
    within = [o for o in objects if o.estimated_distance_m <= max_distance_m]
    return sorted(within, key=lambda o: o.estimated_distance_m)


def nearest_object(
    objects: List[DetectedObject],
    max_distance_m: float = MAX_OBJECT_DISTANCE_M
) -> Optional[DetectedObject]:
    nearest = None
    for obj in objects:
        if obj.estimated_distance_m > max_distance_m:
            continue
        # Strict < keeps the first of equally near objects
        if nearest is None or obj.estimated_distance_m < nearest.estimated_distance_m:
            nearest = obj
    return nearest


def clean_text(text: List[str]) -> List[str]:
    stripped = (t.strip() for t in text)
    return [t for t in stripped if t]


def derive_utterance(
    result: VisionResult,
    max_distance_m: float = MAX_OBJECT_DISTANCE_M
) -> Optional[str]:
    """
    Build the sentence to speak for a vision result.

    Returns:
        "{name} ahead", "Text reads: {a}. {b}", both joined by ". ",
        or None when there is nothing to say.
    """
    nearest = nearest_object(result.objects, max_distance_m)
    object_part = f"{nearest.name} ahead" if nearest is not None else None

    lines = clean_text(result.text)
    text_part = f"Text reads: {'. '.join(lines)}" if lines else None

    if object_part and text_part:
        return f"{object_part}. {text_part}"
    return object_part or text_part


def summarize_status(
    result: VisionResult,
    max_distance_m: float = MAX_OBJECT_DISTANCE_M
) -> str:
    """Short status line shown while running, e.g. 'Nearby: chair (~2.0m). No text.'"""
    within = nearby_objects(result.objects, max_distance_m)[:MAX_STATUS_OBJECTS]
    if within:
        obj_summary = "Nearby: " + ", ".join(
            f"{o.name} (~{o.estimated_distance_m:.1f}m)" for o in within
        ) + "."
    else:
        obj_summary = f"No nearby objects (≤{max_distance_m:g}m)."
    text_summary = "Text detected." if clean_text(result.text) else "No text."
    return f"{obj_summary} {text_summary}"
