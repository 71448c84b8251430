"""
WebP transcoding for mirrored images.

Policy:
- Orientation from EXIF is applied, animated inputs keep their first frame.
- Inputs whose longest side exceeds ``max_dimension`` are downscaled with
  aspect ratio preserved; smaller inputs are never upscaled.
- Encoder quality is picked from the source pixel count, stepping down for
  very large photos to bound the output size.
- Transparency survives as an RGBA WebP with its own ``alpha_quality``.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import TranscodeError
from .keys import STORAGE_CONTENT_TYPE

DEFAULT_MAX_DIMENSION = 2048
DEFAULT_ALPHA_QUALITY = 80
DEFAULT_METHOD = 4

# (max source pixels, quality); the last tier has no upper bound.
DEFAULT_QUALITY_TIERS: tuple[tuple[Optional[int], int], ...] = (
    (1_000_000, 85),
    (4_000_000, 80),
    (12_000_000, 72),
    (None, 65),
)

logger = logging.getLogger(__name__)


@dataclass
class TranscodeConfig:
    """
    Tunables for the WebP encoder.

    Attributes:
        max_dimension: Ceiling for the longest output side, in pixels.
        alpha_quality: Encoder quality for the alpha plane (0-100).
        method: libwebp effort level (0 fast .. 6 smallest).
        quality_tiers: Ascending (max_pixels, quality) steps.
    """
    max_dimension: int = DEFAULT_MAX_DIMENSION
    alpha_quality: int = DEFAULT_ALPHA_QUALITY
    method: int = DEFAULT_METHOD
    quality_tiers: tuple[tuple[Optional[int], int], ...] = DEFAULT_QUALITY_TIERS

    def quality_for(self, width: int, height: int) -> int:
        pixels = max(0, width) * max(0, height)
        for max_pixels, quality in self.quality_tiers:
            if max_pixels is None or pixels <= max_pixels:
                return quality
        return self.quality_tiers[-1][1]

    @classmethod
    def from_persist_dict(cls, data: dict) -> "TranscodeConfig":
        try:
            max_dimension = int(data.get("max_dimension", DEFAULT_MAX_DIMENSION))
        except (TypeError, ValueError):
            max_dimension = DEFAULT_MAX_DIMENSION
        try:
            alpha_quality = int(data.get("alpha_quality", DEFAULT_ALPHA_QUALITY))
        except (TypeError, ValueError):
            alpha_quality = DEFAULT_ALPHA_QUALITY
        try:
            method = int(data.get("method", DEFAULT_METHOD))
        except (TypeError, ValueError):
            method = DEFAULT_METHOD

        return cls(
            max_dimension=max(16, max_dimension),
            alpha_quality=max(0, min(100, alpha_quality)),
            method=max(0, min(6, method)),
            quality_tiers=_parse_tiers(data.get("quality_tiers")),
        )


@dataclass(frozen=True)
class TranscodeResult:
    """Encoded WebP plus the numbers needed to judge the conversion."""
    data: bytes
    width: int
    height: int
    source_width: int
    source_height: int
    quality: int
    has_alpha: bool
    source_bytes: int
    content_type: str = STORAGE_CONTENT_TYPE

    @property
    def encoded_bytes(self) -> int:
        return len(self.data)

    @property
    def reduction(self) -> float:
        """Fraction of the source size saved (negative if the output grew)."""
        if self.source_bytes <= 0:
            return 0.0
        return 1.0 - (self.encoded_bytes / self.source_bytes)


class ImageTranscoder:
    """
    Converts arbitrary raster images to size-bounded WebP.

    Usage:
        transcoder = ImageTranscoder(TranscodeConfig(max_dimension=1600))
        result = transcoder.transcode(raw_bytes)
        upload(result.data, result.content_type)
    """

    def __init__(self, config: Optional[TranscodeConfig] = None) -> None:
        self._config = config or TranscodeConfig()

    @property
    def config(self) -> TranscodeConfig:
        return self._config

    def transcode(self, data: bytes) -> TranscodeResult:
        """
        Decode ``data`` and re-encode it as WebP.

        Raises:
            TranscodeError: If the payload is empty, not an image, or corrupt.
        """
        if not data:
            raise TranscodeError("empty image payload")

        try:
            with Image.open(io.BytesIO(data)) as source:
                source.load()
                source_width, source_height = source.size
                image = ImageOps.exif_transpose(source)
                return self._encode(image, source_width, source_height, len(data))
        except TranscodeError:
            raise
        except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
            raise TranscodeError(f"not a decodable image: {exc}") from exc
        except (OSError, ValueError, SyntaxError) as exc:
            raise TranscodeError(f"corrupt image data: {exc}") from exc

    def _encode(
        self,
        image: Image.Image,
        source_width: int,
        source_height: int,
        source_bytes: int,
    ) -> TranscodeResult:
        cfg = self._config
        has_alpha = _has_alpha(image)
        image = image.convert("RGBA" if has_alpha else "RGB")

        if max(image.size) > cfg.max_dimension:
            image.thumbnail((cfg.max_dimension, cfg.max_dimension), Image.Resampling.LANCZOS)

        quality = cfg.quality_for(source_width, source_height)
        out = io.BytesIO()
        image.save(
            out,
            format="WEBP",
            quality=quality,
            alpha_quality=cfg.alpha_quality,
            method=cfg.method,
        )

        result = TranscodeResult(
            data=out.getvalue(),
            width=image.width,
            height=image.height,
            source_width=source_width,
            source_height=source_height,
            quality=quality,
            has_alpha=has_alpha,
            source_bytes=source_bytes,
        )
        logger.debug(
            "Transcoded %dx%d -> %dx%d q=%d (%d -> %d bytes)",
            source_width,
            source_height,
            result.width,
            result.height,
            quality,
            source_bytes,
            result.encoded_bytes,
        )
        return result


def _has_alpha(image: Image.Image) -> bool:
    if image.mode in ("RGBA", "LA", "PA", "RGBa", "La"):
        return True
    return image.mode == "P" and "transparency" in image.info


def _parse_tiers(raw) -> tuple[tuple[Optional[int], int], ...]:
    if not isinstance(raw, (list, tuple)) or not raw:
        return DEFAULT_QUALITY_TIERS

    bounded: list[tuple[int, int]] = []
    open_quality: Optional[int] = None
    for tier in raw:
        if not isinstance(tier, (list, tuple)) or len(tier) != 2:
            return DEFAULT_QUALITY_TIERS
        max_pixels, quality = tier
        try:
            quality = max(1, min(100, int(quality)))
        except (TypeError, ValueError):
            return DEFAULT_QUALITY_TIERS
        if max_pixels is None:
            open_quality = quality
            continue
        try:
            bounded.append((int(max_pixels), quality))
        except (TypeError, ValueError):
            return DEFAULT_QUALITY_TIERS

    bounded.sort(key=lambda t: t[0])
    if open_quality is None:
        open_quality = bounded[-1][1] if bounded else DEFAULT_QUALITY_TIERS[-1][1]

    tiers: list[tuple[Optional[int], int]] = list(bounded)
    tiers.append((None, open_quality))
    return tuple(tiers)
