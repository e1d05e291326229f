"""
Data model shared by the camera ingress, the vision providers and the
speech policy.
"""

import base64
import binascii
import io
import json
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

from errors import ResponseShapeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Frame:
    """One encoded still image from the camera, timestamped at capture (ms)."""
    data: bytes
    width: int
    height: int
    captured_at_ms: float
    mime_type: str = "image/jpeg"

    @classmethod
    def from_base64(cls, payload: str, captured_at_ms: float, jpeg_quality: int = 75) -> "Frame":
        """
        Decode a base64 frame as sent by the device.

        Accepts an optional data URL prefix. Non-JPEG images are re-encoded
        to JPEG so providers always receive image/jpeg.
        """
        if not payload:
            raise ValueError("Empty frame payload")
        if payload.startswith("data:"):
            payload = payload.split(",", 1)[1] if "," in payload else ""
        try:
            raw = base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Frame is not valid base64: {e}")
        return cls.from_image_bytes(raw, captured_at_ms, jpeg_quality)

    @classmethod
    def from_image_bytes(cls, raw: bytes, captured_at_ms: float, jpeg_quality: int = 75) -> "Frame":
        try:
            image = Image.open(io.BytesIO(raw))
            width, height = image.size
            if image.format != "JPEG":
                buffer = io.BytesIO()
                image.convert("RGB").save(buffer, format="JPEG", quality=jpeg_quality)
                raw = buffer.getvalue()
        except (UnidentifiedImageError, OSError) as e:
            raise ValueError(f"Frame is not a decodable image: {e}")
        return cls(data=raw, width=width, height=height, captured_at_ms=captured_at_ms)


@dataclass(frozen=True)
class DetectedObject:
    name: str
    estimated_distance_m: float


@dataclass(frozen=True)
class VisionResult:
    """Objects and visible text found in one frame."""
    objects: List[DetectedObject] = field(default_factory=list)
    text: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload) -> "VisionResult":
        """
        Build a result from decoded JSON.

        Numeric strings are accepted as distances and scalar text entries are
        stringified. Entries that still do not fit are skipped so one bad entry
        does not discard the rest of the frame.
        """
        if not isinstance(payload, dict):
            raise ResponseShapeError("Vision JSON is not an object")

        raw_objects = payload.get("objects") or []
        raw_text = payload.get("text") or []
        if not isinstance(raw_objects, list) or not isinstance(raw_text, list):
            raise ResponseShapeError("Vision JSON 'objects' and 'text' must be lists")

        objects = []
        for obj in raw_objects:
            detected = _parse_object(obj)
            if detected is None:
                logger.warning(f"⚠️ Skipping invalid object entry: {obj!r}")
                continue
            objects.append(detected)

        text = []
        for entry in raw_text:
            if isinstance(entry, str):
                text.append(entry)
            elif isinstance(entry, (int, float)) and not isinstance(entry, bool):
                text.append(str(entry))
            else:
                logger.warning(f"⚠️ Skipping invalid text entry: {entry!r}")

        return cls(objects=objects, text=text)

    @classmethod
    def from_model_text(cls, text: str) -> "VisionResult":
        """Parse the model's answer, tolerating markdown code fences."""
        clean = strip_code_fences(text or "")
        if not clean:
            raise ResponseShapeError("Empty vision response")
        try:
            payload = json.loads(clean)
        except json.JSONDecodeError as e:
            raise ResponseShapeError(f"Failed to parse vision JSON: {e}")
        return cls.from_dict(payload)


def strip_code_fences(text: str) -> str:
    return text.replace("```json", "").replace("```", "").strip()


def _parse_object(obj) -> Optional[DetectedObject]:
    if not isinstance(obj, dict):
        return None
    name = obj.get("name")
    distance = obj.get("estimated_distance_m")
    # bool is an int subclass
    if not isinstance(name, str) or not name.strip() or isinstance(distance, bool):
        return None
    if not isinstance(distance, (int, float, str)):
        return None
    try:
        distance = float(distance)
    except ValueError:
        return None
    if not math.isfinite(distance):
        return None
    return DetectedObject(name=name, estimated_distance_m=distance)
