"""
Inceptra Backend — Response Normalizer
========================================

What:  Converts heterogeneous provider payloads into one canonical shape.
Why:   Providers are uncontrolled: the same operation may come back as raw
       bytes, a PIL image, a data URI, a base64 string, a dict or an SDK
       object. Callers only ever see a base64 string (image features) or a
       plain string (text features).
How:   Each canonical kind has an ordered tuple of decoders. Each decoder
       returns the canonical value or None ("not my shape"); the first match
       wins and NormalizationError is raised only when none match.

Image decode order:
    1. raw binary (bytes / bytearray / memoryview)
    2. decoded image object (PIL.Image.Image)
    3. data URI string ("data:image/png;base64,...")
    4. already-base64 string (validated, returned unchanged)
    5. mapping or object exposing image/mask/base64/data/buffer/blob
    6. sequence whose first element decodes (segmentation results)

Text decode order:
    1. plain string
    2. UTF-8 bytes
    3. chat completion (choices[0].message.content)
    4. object with a .text attribute (Gemini responses)
    5. mapping with generated_text/text/content/analysis
    6. sequence whose first element decodes

Background removal additionally composites the mask onto the original
image (see composite_background_removal).
"""

import base64
import binascii
import io
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Callable, Optional, Tuple

from PIL import Image

from app.schemas.generation import Feature

logger = logging.getLogger(__name__)

IMAGE_FIELDS = ("image", "mask", "base64", "data", "buffer", "blob")
TEXT_FIELDS = ("generated_text", "text", "content", "analysis")

# Longest side of the background-removal canvas
MAX_CANVAS_SIDE = 1024

# Nested shapes deeper than this are not real provider payloads
_MAX_DEPTH = 4


class NormalizationError(Exception):
    """The provider payload matched none of the known shapes."""

    def __init__(self, reason: str, payload_type: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.payload_type = payload_type


# ── Image decoders ────────────────────────────────────────────────────────


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _image_from_binary(value: Any, depth: int) -> Optional[str]:
    if isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
        return _b64(data) if data else None
    return None


def _image_from_pil(value: Any, depth: int) -> Optional[str]:
    if isinstance(value, Image.Image):
        buffer = io.BytesIO()
        value.save(buffer, format="PNG")
        return _b64(buffer.getvalue())
    return None


def _image_from_data_uri(value: Any, depth: int) -> Optional[str]:
    if not isinstance(value, str) or not value.startswith("data:"):
        return None
    header, sep, payload = value.partition(",")
    if not sep or ";base64" not in header:
        return None
    return _image_from_base64(payload, depth)


def _image_from_base64(value: Any, depth: int) -> Optional[str]:
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate:
        return None
    try:
        base64.b64decode(candidate, validate=True)
    except (binascii.Error, ValueError):
        return None
    return candidate


def _image_from_fields(value: Any, depth: int) -> Optional[str]:
    for field in IMAGE_FIELDS:
        # huggingface_hub outputs are dicts that also expose attributes
        inner = value.get(field) if isinstance(value, Mapping) else None
        if inner is None:
            inner = getattr(value, field, None)
        if inner is not None and inner is not value:
            decoded = _decode(inner, IMAGE_DECODERS, depth + 1)
            if decoded is not None:
                return decoded
    return None


def _image_from_sequence(value: Any, depth: int) -> Optional[str]:
    if isinstance(value, (str, bytes, bytearray, Mapping)):
        return None
    if isinstance(value, Sequence) and len(value) > 0:
        return _decode(value[0], IMAGE_DECODERS, depth + 1)
    return None


# ── Text decoders ─────────────────────────────────────────────────────────


def _text_from_str(value: Any, depth: int) -> Optional[str]:
    if isinstance(value, str):
        return value.strip() or None
    return None


def _text_from_bytes(value: Any, depth: int) -> Optional[str]:
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode("utf-8").strip() or None
        except UnicodeDecodeError:
            return None
    return None


def _text_from_chat_completion(value: Any, depth: int) -> Optional[str]:
    choices = value.get("choices") if isinstance(value, Mapping) else getattr(value, "choices", None)
    if not choices:
        return None
    first = choices[0]
    message = first.get("message") if isinstance(first, Mapping) else getattr(first, "message", None)
    if message is None:
        return None
    content = message.get("content") if isinstance(message, Mapping) else getattr(message, "content", None)
    return _text_from_str(content, depth)


def _text_from_attribute(value: Any, depth: int) -> Optional[str]:
    if isinstance(value, (str, bytes, Mapping)):
        return None
    try:
        text = getattr(value, "text", None)
    except ValueError:
        # Gemini raises ValueError from .text when the candidate was blocked
        return None
    return _text_from_str(text, depth)


def _text_from_fields(value: Any, depth: int) -> Optional[str]:
    if not isinstance(value, Mapping):
        return None
    for field in TEXT_FIELDS:
        decoded = _text_from_str(value.get(field), depth)
        if decoded is not None:
            return decoded
    return None


def _text_from_sequence(value: Any, depth: int) -> Optional[str]:
    if isinstance(value, (str, bytes, bytearray, Mapping)):
        return None
    if isinstance(value, Sequence) and len(value) > 0:
        return _decode(value[0], TEXT_DECODERS, depth + 1)
    return None


Decoder = Callable[[Any, int], Optional[str]]

IMAGE_DECODERS: Tuple[Decoder, ...] = (
    _image_from_binary,
    _image_from_pil,
    _image_from_data_uri,
    _image_from_base64,
    _image_from_fields,
    _image_from_sequence,
)

TEXT_DECODERS: Tuple[Decoder, ...] = (
    _text_from_str,
    _text_from_bytes,
    _text_from_chat_completion,
    _text_from_attribute,
    _text_from_fields,
    _text_from_sequence,
)


def _decode(value: Any, decoders: Tuple[Decoder, ...], depth: int = 0) -> Optional[str]:
    if value is None or depth > _MAX_DEPTH:
        return None
    for decoder in decoders:
        result = decoder(value, depth)
        if result is not None:
            return result
    return None


# ── Compositing ───────────────────────────────────────────────────────────


def fit_within(size: Tuple[int, int], max_side: int = MAX_CANVAS_SIDE) -> Tuple[int, int]:
    """
    Scale (width, height) so the longest side is at most max_side.

    Aspect ratio is preserved and images are never enlarged. When scaling
    happens the longest side is exactly max_side.
    """
    width, height = size
    longest = max(width, height)
    if longest <= max_side:
        return width, height
    scale = max_side / longest
    if width >= height:
        return max_side, max(1, round(height * scale))
    return max(1, round(width * scale)), max_side


def composite_background_removal(original: bytes, mask: bytes) -> str:
    """
    Attach a segmentation mask to the original image as its alpha channel.

    The original is resized to fit a 1024x1024 canvas, the mask is turned
    into 8-bit grayscale and stretched to the same canvas, and the result is
    encoded as PNG and returned as base64. Same inputs, same output.

    Raises:
        NormalizationError: either input is not a decodable image
    """
    try:
        with Image.open(io.BytesIO(original)) as source:
            canvas = source.convert("RGB")
        with Image.open(io.BytesIO(mask)) as mask_source:
            alpha = mask_source.convert("L")
    except (OSError, ValueError) as e:
        raise NormalizationError(f"undecodable image for compositing: {e}") from e

    target = fit_within(canvas.size)
    if canvas.size != target:
        canvas = canvas.resize(target, Image.LANCZOS)
    if alpha.size != target:
        alpha = alpha.resize(target, Image.LANCZOS)

    canvas.putalpha(alpha)
    buffer = io.BytesIO()
    canvas.save(buffer, format="PNG")
    return _b64(buffer.getvalue())


# ── Normalizer ────────────────────────────────────────────────────────────


class ResponseNormalizer:
    """Feature-aware front door over the decoder tables."""

    def normalize(self, feature: Feature, payload: Any) -> str:
        """
        Return the canonical output for a feature's raw provider payload.

        Idempotent: normalizing a canonical value returns it unchanged.

        Raises:
            NormalizationError: no known shape matched, or the payload was empty
        """
        decoders = IMAGE_DECODERS if feature.is_image else TEXT_DECODERS
        result = _decode(payload, decoders)
        if result is None:
            raise NormalizationError(
                f"unrecognized {feature.value} payload",
                payload_type=type(payload).__name__,
            )
        return result

    def normalize_background_removal(self, original: bytes, payload: Any) -> str:
        """Decode the provider mask, then composite it onto the original upload."""
        mask_b64 = self.normalize(Feature.BACKGROUND_REMOVAL, payload)
        return composite_background_removal(original, base64.b64decode(mask_b64))


response_normalizer = ResponseNormalizer()
