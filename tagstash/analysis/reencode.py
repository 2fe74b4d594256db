"""Size-bounded re-encoding of stored images.

``ensure_max_size`` brings an image file under a byte budget without
changing its format. It searches a two-dimensional space: a shrinking
sequence of widths crossed with a per-format quality or effort ladder,
returning as soon as one encoding fits and otherwise keeping the
smallest one it produced.

Each supported format is a codec exposing the same capability,
``try_encode(frames, level)``; formats without a codec (BMP, ICO, ...)
are left alone even when oversized.
"""

import io
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from PIL import Image, ImageSequence

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 256 * 1024
MIN_WIDTH = 64
WIDTH_STEP = 0.85

# 90, 85, ..., 30
LOSSY_QUALITY_LADDER = tuple(range(90, 29, -5))

# zlib levels; the last rung also reduces the image to an adaptive palette
PNG_PALETTE_EFFORT = 10
PNG_EFFORT_LADDER = (6, 8, 9, PNG_PALETTE_EFFORT)

# Palette sizes, largest first
GIF_COLOR_LADDER = (256, 128, 64, 32)
GIF_TRANSPARENT_INDEX = 255

FORMAT_ALIASES = {"MPO": "JPEG", "JPG": "JPEG", "TIF": "TIFF"}


@dataclass
class FrameSet:
    """Decoded frames of an image plus the timing needed to re-animate them."""

    frames: List[Image.Image]
    durations: List[int] = field(default_factory=list)
    loop: Optional[int] = None
    info: Dict = field(default_factory=dict)

    @property
    def size(self):  # type: ignore[no-untyped-def]
        return self.frames[0].size

    @property
    def animated(self) -> bool:
        return len(self.frames) > 1

    def resized(self, width: int, height: int) -> "FrameSet":
        if (width, height) == self.size:
            return self
        frames = [f.resize((width, height), Image.Resampling.LANCZOS) for f in self.frames]
        return FrameSet(frames, list(self.durations), self.loop, dict(self.info))

    def animation_kwargs(self) -> Dict:
        if not self.animated:
            return {}
        kwargs: Dict = {"save_all": True, "append_images": self.frames[1:]}
        if self.durations:
            kwargs["duration"] = self.durations
        if self.loop is not None:
            kwargs["loop"] = self.loop
        return kwargs


@dataclass
class ReencodeResult:
    """Outcome of ``ensure_max_size``."""

    changed: bool
    size: int
    original_size: int
    format: Optional[str] = None


def _flatten(frame: Image.Image) -> Image.Image:
    """Convert a frame to RGB, compositing any alpha onto white."""
    if frame.mode in ("RGB", "L"):
        return frame
    if frame.mode in ("RGBA", "LA"):
        background = Image.new("RGB", frame.size, (255, 255, 255))
        background.paste(frame.convert("RGBA"), mask=frame.convert("RGBA").getchannel("A"))
        return background
    return frame.convert("RGB")


def _quantize(frame: Image.Image, colors: int) -> Image.Image:
    if frame.mode in ("RGBA", "LA"):
        return frame.convert("RGBA").quantize(colors=colors, method=Image.Quantize.FASTOCTREE)
    return frame.convert("RGB").quantize(colors=colors, method=Image.Quantize.MEDIANCUT)


def _quantize_keyed(frame: Image.Image, colors: int) -> Image.Image:
    """Palette image whose index 255 marks pixels with alpha below 128."""
    paletted = frame.convert("RGB").quantize(
        colors=min(colors, GIF_TRANSPARENT_INDEX), method=Image.Quantize.MEDIANCUT
    )
    palette = (paletted.getpalette() or [])[: GIF_TRANSPARENT_INDEX * 3]
    paletted.putpalette(palette + [0] * (768 - len(palette)))
    alpha = frame.convert("RGBA").getchannel("A")
    paletted.paste(GIF_TRANSPARENT_INDEX, mask=alpha.point(lambda a: 255 if a < 128 else 0))
    return paletted


class FormatCodec:
    """Encode a frame set in one format at a given ladder level."""

    format_name = ""
    ladder: Sequence[int] = ()

    def try_encode(self, frames: FrameSet, level: int) -> bytes:
        buf = io.BytesIO()
        self.save(frames, level, buf)
        return buf.getvalue()

    def save(self, frames: FrameSet, level: int, buf: io.BytesIO) -> None:
        raise NotImplementedError


class JpegCodec(FormatCodec):
    format_name = "JPEG"
    ladder = LOSSY_QUALITY_LADDER

    def save(self, frames: FrameSet, level: int, buf: io.BytesIO) -> None:
        frame = frames.frames[0]
        if frame.mode != "CMYK":
            frame = _flatten(frame)
        kwargs = {"quality": level, "optimize": True, "progressive": True}
        if frames.info.get("icc_profile"):
            kwargs["icc_profile"] = frames.info["icc_profile"]
        frame.save(buf, format="JPEG", **kwargs)


class WebpCodec(FormatCodec):
    format_name = "WEBP"
    ladder = LOSSY_QUALITY_LADDER

    def save(self, frames: FrameSet, level: int, buf: io.BytesIO) -> None:
        first = frames.frames[0]
        first.save(
            buf,
            format="WEBP",
            quality=level,
            method=4,
            **frames.animation_kwargs(),
        )


class TiffCodec(FormatCodec):
    """TIFF with JPEG compression; every page is kept."""

    format_name = "TIFF"
    ladder = LOSSY_QUALITY_LADDER

    def save(self, frames: FrameSet, level: int, buf: io.BytesIO) -> None:
        pages = [_flatten(f) for f in frames.frames]
        kwargs: Dict = {"compression": "jpeg", "quality": level}
        if len(pages) > 1:
            kwargs.update(save_all=True, append_images=pages[1:])
        pages[0].save(buf, format="TIFF", **kwargs)


class PngCodec(FormatCodec):
    """PNG with rising zlib effort, ending in a palette reduction."""

    format_name = "PNG"
    ladder = PNG_EFFORT_LADDER

    def save(self, frames: FrameSet, level: int, buf: io.BytesIO) -> None:
        source = frames.frames
        if level >= PNG_PALETTE_EFFORT:
            source = [_quantize(f, 256) for f in source]
            kwargs: Dict = {"optimize": True}
        else:
            kwargs = {"compress_level": level}
        if len(source) > 1:
            kwargs.update(save_all=True, append_images=source[1:])
            if frames.durations:
                kwargs["duration"] = frames.durations
            if frames.loop is not None:
                kwargs["loop"] = frames.loop
        source[0].save(buf, format="PNG", **kwargs)


class GifCodec(FormatCodec):
    """GIF with a shrinking palette; animations keep every frame."""

    format_name = "GIF"
    ladder = GIF_COLOR_LADDER

    def save(self, frames: FrameSet, level: int, buf: io.BytesIO) -> None:
        keyed = any(f.mode in ("RGBA", "LA") for f in frames.frames)
        kwargs: Dict = {"optimize": True}
        if keyed:
            paletted = [_quantize_keyed(f, level) for f in frames.frames]
            kwargs["transparency"] = GIF_TRANSPARENT_INDEX
        else:
            paletted = [_quantize(f, level) for f in frames.frames]
        if len(paletted) > 1:
            if keyed:
                kwargs["disposal"] = 2
            kwargs.update(save_all=True, append_images=paletted[1:])
            if frames.durations:
                kwargs["duration"] = frames.durations
            kwargs["loop"] = frames.loop if frames.loop is not None else 0
        paletted[0].save(buf, format="GIF", **kwargs)


CODECS: Dict[str, FormatCodec] = {
    codec.format_name: codec
    for codec in (JpegCodec(), PngCodec(), WebpCodec(), TiffCodec(), GifCodec())
}


def guess_format(path: Union[Path, str]) -> Optional[str]:
    """Guess a Pillow format name from a file extension."""
    ext = Path(path).suffix.lower()
    fmt = Image.registered_extensions().get(ext)
    return FORMAT_ALIASES.get(fmt, fmt) if fmt else None


def sniff_mime_type(path: Union[Path, str]) -> Optional[str]:
    """MIME type of the decoded image at ``path``, None if it is not an image."""
    try:
        with Image.open(path) as img:
            fmt = img.format
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError):
        return None
    if not fmt:
        return None
    return Image.MIME.get(FORMAT_ALIASES.get(fmt, fmt))


def codec_for(fmt: Optional[str]) -> Optional[FormatCodec]:
    if not fmt:
        return None
    fmt = fmt.upper()
    return CODECS.get(FORMAT_ALIASES.get(fmt, fmt))


def candidate_widths(width: int, min_width: int = MIN_WIDTH, step: float = WIDTH_STEP) -> List[int]:
    """Widths to try, from the original down to ``min_width``.

    Each step is ``step`` times the previous one. An image narrower than
    ``min_width`` is only tried at its own width.
    """
    widths = [width]
    current = width
    while current > min_width:
        current = max(min_width, int(current * step))
        widths.append(current)
    return widths


def load_frames(img: Image.Image) -> FrameSet:
    """Decode every frame of ``img`` into a resizable mode."""
    loop = img.info.get("loop")
    info = {k: v for k, v in img.info.items() if k in ("icc_profile",)}
    frames: List[Image.Image] = []
    durations: List[int] = []
    for frame in ImageSequence.Iterator(img):
        if frame.mode in ("RGB", "RGBA", "L", "LA", "CMYK"):
            frames.append(frame.copy())
        elif frame.mode == "P" and "transparency" in frame.info:
            frames.append(frame.convert("RGBA"))
        elif frame.mode == "P":
            frames.append(frame.convert("RGB"))
        else:
            frames.append(frame.convert("RGBA" if "A" in frame.getbands() else "RGB"))
        durations.append(int(frame.info.get("duration", 100)))
    return FrameSet(frames, durations, loop, info)


def search_encoding(codec: FormatCodec, frames: FrameSet, max_bytes: int) -> Optional[bytes]:
    """Find the first encoding at or under ``max_bytes``, else the smallest one.

    Widths are tried largest first and, within a width, the codec ladder
    is walked in order, so the first fitting encoding is the one with the
    least resolution and quality loss.
    """
    width, height = frames.size
    best: Optional[bytes] = None
    for target_width in candidate_widths(width):
        target_height = max(1, round(height * target_width / width))
        scaled = frames.resized(target_width, target_height)
        for level in codec.ladder:
            data = codec.try_encode(scaled, level)
            if best is None or len(data) < len(best):
                best = data
            if len(data) <= max_bytes:
                logger.debug(
                    f"{codec.format_name} fits at {target_width}x{target_height} "
                    f"level {level}: {len(data)} bytes"
                )
                return data
    return best


def _replace_file(path: Path, data: bytes) -> None:
    """Atomically overwrite ``path`` with ``data``."""
    mode = path.stat().st_mode & 0o777
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        os.fchmod(fd, mode)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def ensure_max_size(path: Union[Path, str], max_bytes: int = DEFAULT_MAX_BYTES) -> ReencodeResult:
    """Shrink the image at ``path`` in place until it fits ``max_bytes``.

    Args:
        path: Image file to check and possibly rewrite
        max_bytes: Byte budget

    Returns:
        ReencodeResult; ``changed`` is False when the file was already under
        budget, its format has no codec, decoding or encoding failed, or no
        encoding smaller than the original was found. The file keeps its
        path, extension and format in every case.
    """
    path = Path(path)
    original_size = path.stat().st_size
    if original_size <= max_bytes:
        return ReencodeResult(changed=False, size=original_size, original_size=original_size)

    fmt: Optional[str] = None
    try:
        with Image.open(path) as img:
            fmt = img.format or guess_format(path)
            codec = codec_for(fmt)
            if codec is None:
                logger.info(f"No re-encoder for {fmt or 'unknown'} format, keeping {path.name}")
                return ReencodeResult(False, original_size, original_size, fmt)
            frames = load_frames(img)
        best = search_encoding(codec, frames, max_bytes)
    except Exception as e:
        logger.warning(f"Re-encoding failed for {path.name}, keeping original: {e}")
        return ReencodeResult(False, original_size, original_size, fmt)

    if best is None or len(best) >= original_size:
        return ReencodeResult(False, original_size, original_size, codec.format_name)

    try:
        _replace_file(path, best)
    except OSError as e:
        logger.warning(f"Could not rewrite {path.name}, keeping original: {e}")
        return ReencodeResult(False, original_size, original_size, codec.format_name)

    if len(best) > max_bytes:
        logger.info(
            f"{path.name}: best effort {original_size} -> {len(best)} bytes, "
            f"still over budget of {max_bytes}"
        )
    else:
        logger.info(f"{path.name}: re-encoded {original_size} -> {len(best)} bytes")
    return ReencodeResult(True, len(best), original_size, codec.format_name)
