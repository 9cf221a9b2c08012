"""
Inceptra Backend — Upload Preparation Service
===============================================

What:  Validates uploaded files and turns them into provider-ready input.
Why:   Uploads are untrusted. They are checked by content (not by filename or
       client-supplied content type) before any quota check or provider call.
How:   Pillow sniffs image headers, pypdf opens and extracts resumes.
       Decoding is CPU-bound, so it runs in a worker thread and the event
       loop stays free for other requests.
Who:   Called by the generation service for the background-remover and
       resume-analyzer features.

Validation order (cheapest first):
    1. Size check against the per-feature limit
    2. Content sniff (image format / PDF structure)
    3. Feature-specific preparation (compression, text extraction)
"""

import asyncio
import io
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from app.config import settings
from app.exceptions import ValidationError
from app.services.normalizer import fit_within

logger = logging.getLogger(__name__)

# Pillow format names accepted for background removal
ALLOWED_IMAGE_FORMATS = {"JPEG", "PNG"}

PDF_MAGIC = b"%PDF-"

# Re-encoding applied before segmentation: smaller uploads, faster inference
SEGMENTATION_JPEG_QUALITY = 85

# Broken content streams, fonts or encodings on a single page
PAGE_EXTRACTION_ERRORS = (PdfReadError, ValueError, KeyError, TypeError, IndexError, AttributeError)


class FileService:
    """Stateless validation and preparation of uploaded files."""

    def validate_size(self, size: int, max_size: int, label: str) -> None:
        """
        Reject empty and oversized uploads.

        Raises:
            ValidationError with a human-readable size limit message
        """
        max_mb = max_size / (1024 * 1024)
        if size == 0:
            raise ValidationError(message=f"The uploaded {label} is empty.", field="file")
        if size > max_size:
            raise ValidationError(
                message=(
                    f"File size ({size / (1024 * 1024):.1f}MB) exceeds maximum of "
                    f"{max_mb:.0f}MB."
                ),
                field="file",
                context={"max_size_mb": max_mb, "actual_size": size},
            )

    def detect_image_format(self, content: bytes) -> str:
        """
        Identify the image format from its header bytes.

        Returns:
            Pillow format name ("JPEG" or "PNG")

        Raises:
            ValidationError if the bytes are not a JPEG or PNG image
        """
        try:
            with Image.open(io.BytesIO(content)) as image:
                image_format = image.format
                width, height = image.size
                image.verify()
        except Image.DecompressionBombError as e:
            raise self._too_large(str(e)) from e
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
            image_format = None

        if image_format not in ALLOWED_IMAGE_FORMATS:
            raise ValidationError(
                message="The file must be a valid image (PNG or JPEG).",
                field="image",
                context={"detected_format": image_format},
            )
        if width * height > settings.max_image_pixels:
            raise self._too_large(f"{width}x{height}")
        return image_format

    def _too_large(self, detail: str) -> ValidationError:
        return ValidationError(
            message="The image dimensions are too large. Please upload a smaller image.",
            field="image",
            context={"max_pixels": settings.max_image_pixels, "detail": detail},
        )

    def _compress_for_segmentation(self, content: bytes) -> bytes:
        with Image.open(io.BytesIO(content)) as source:
            image = source.convert("RGB")
        target = fit_within(image.size)
        if image.size != target:
            image = image.resize(target, Image.LANCZOS)
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=SEGMENTATION_JPEG_QUALITY)
        return buffer.getvalue()

    async def prepare_image(self, content: bytes) -> bytes:
        """
        Validate a background-removal upload and return the compressed copy
        sent to the segmentation provider. The original bytes are kept by the
        caller for compositing.
        """
        self.validate_size(len(content), settings.max_image_size, "image")
        self.detect_image_format(content)
        try:
            compressed = await asyncio.to_thread(self._compress_for_segmentation, content)
        except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
            # verify() only checks structure; a truncated body fails on decode
            logger.warning("Could not decode uploaded image: %s", str(e))
            raise ValidationError(
                message="The image could not be decoded. Please upload a different file.",
                field="image",
                context={"error_type": type(e).__name__},
            ) from e
        logger.debug("Compressed upload %d → %d bytes", len(content), len(compressed))
        return compressed

    def _extract_pdf_text(self, content: bytes) -> str:
        """Text of every page; a page that fails to extract contributes nothing."""
        reader = PdfReader(io.BytesIO(content))
        pages = []
        for number, page in enumerate(reader.pages, start=1):
            try:
                pages.append(page.extract_text() or "")
            except PAGE_EXTRACTION_ERRORS as e:
                logger.warning("Skipping unreadable PDF page %d: %s", number, str(e))
                pages.append("")
        return "\n".join(pages).strip()

    async def extract_resume_text(self, content: bytes, min_length: Optional[int] = None) -> str:
        """
        Validate a resume upload and return its plain text.

        Raises:
            ValidationError: not a PDF, unreadable, or too little text
        """
        min_length = min_length or settings.min_resume_text_length
        self.validate_size(len(content), settings.max_resume_size, "resume")
        if not content.startswith(PDF_MAGIC):
            raise ValidationError(message="Only PDF resumes are supported.", field="file")

        try:
            text = await asyncio.to_thread(self._extract_pdf_text, content)
        except (PdfReadError, OSError, ValueError, KeyError, TypeError, IndexError) as e:
            logger.warning("Could not read uploaded PDF: %s", str(e))
            raise ValidationError(
                message="The PDF could not be read. Please upload a different file.",
                field="file",
                context={"error_type": type(e).__name__},
            ) from e

        if len(text) < min_length:
            raise ValidationError(
                message="Could not extract enough text from the PDF. Please upload a text-based resume.",
                field="file",
                context={"extracted_chars": len(text), "min_chars": min_length},
            )
        return text


# ── Singleton Instance ────────────────────────────────────────────────────
file_service = FileService()
