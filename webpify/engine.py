from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union
import io
import logging
import os
import struct
import tempfile

import PIL
from PIL import Image, ImageOps, ImageSequence, features

from .errors import DecodeError, EncodeError, EnvironmentCheckError
from .plan import ConversionTask
from .results import ConversionResult
from .settings import AnimationPolicy, ConvertSettings


log = logging.getLogger(__name__)

# Metadata keys we carry over when the user asks to keep metadata.
METADATA_KEYS = ("exif", "icc_profile")

# GIF frames without an explicit delay.
DEFAULT_FRAME_DURATION_MS = 100

# Everything Pillow is known to raise on malformed input or a bad EXIF block.
DECODE_ERRORS = (
    OSError,
    ValueError,
    SyntaxError,
    TypeError,
    EOFError,
    struct.error,
    Image.DecompressionBombError,
)


def check_environment(s: ConvertSettings) -> None:
    """
    Pre-flight checks; raises EnvironmentCheckError before anything is written.

    The input root is validated before the output root is created, so a bad
    input never leaves an empty output directory behind.
    """
    if not features.check_module("webp"):
        raise EnvironmentCheckError("Pillow was built without WebP support")
    log.debug("Pillow %s, WebP support available", PIL.__version__)

    input_dir = Path(s.input_dir)
    if not input_dir.is_dir():
        raise EnvironmentCheckError(f"Input directory does not exist: {input_dir}")
    if not os.access(input_dir, os.R_OK | os.X_OK):
        raise EnvironmentCheckError(f"Input directory is not readable: {input_dir}")

    output_dir = Path(s.output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise EnvironmentCheckError(f"Failed to create output directory: {e}") from e

    if not os.access(output_dir, os.W_OK):
        raise EnvironmentCheckError(f"Output directory is not writable: {output_dir}")


# ----- Decoded images -----

@dataclass
class _Decoded:
    metadata: dict = field(default_factory=dict)

    def images(self) -> List[Image.Image]:
        raise NotImplementedError

    @property
    def frame_count(self) -> int:
        return len(self.images())

    def close(self) -> None:
        for im in self.images():
            im.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()


@dataclass
class SingleFrame(_Decoded):
    image: Optional[Image.Image] = None

    def images(self) -> List[Image.Image]:
        return [self.image]


@dataclass
class MultiFrame(_Decoded):
    frames: List[Image.Image] = field(default_factory=list)
    durations: List[int] = field(default_factory=list)
    loop: int = 0

    def images(self) -> List[Image.Image]:
        return list(self.frames)


Decoded = Union[SingleFrame, MultiFrame]


def decode(path: Path, animation: AnimationPolicy = "keep", auto_orient: bool = True) -> Decoded:
    """
    Read an image file into memory.

    Animated inputs become a MultiFrame (every frame composited to RGBA)
    unless animation == "first", in which case only frame 0 is kept.
    """
    try:
        with Image.open(path) as im:
            im.load()
            metadata = {k: im.info[k] for k in METADATA_KEYS if k in im.info}

            n_frames = getattr(im, "n_frames", 1)
            if animation == "keep" and n_frames > 1:
                return _decode_frames(im, metadata)

            # Auto-orient, since orientation lives in the EXIF we strip.
            single = ImageOps.exif_transpose(im) if auto_orient else im
            return SingleFrame(metadata=metadata, image=_to_webp_mode(single))
    except DECODE_ERRORS as e:
        raise DecodeError(str(e) or e.__class__.__name__) from e


def _decode_frames(im: Image.Image, metadata: dict) -> MultiFrame:
    frames: List[Image.Image] = []
    durations: List[int] = []

    for frame in ImageSequence.Iterator(im):
        durations.append(int(frame.info.get("duration", DEFAULT_FRAME_DURATION_MS)))
        frames.append(frame.convert("RGBA"))

    # GIFs without a NETSCAPE loop block play once.
    loop = int(im.info.get("loop", 1))
    return MultiFrame(metadata=metadata, frames=frames, durations=durations, loop=loop)


def _to_webp_mode(im: Image.Image) -> Image.Image:
    # WebP only stores RGB / RGBA.
    if _has_alpha(im):
        return im.convert("RGBA")
    return im.convert("RGB")


def _has_alpha(im: Image.Image) -> bool:
    if im.mode in ("RGBA", "LA", "PA", "RGBa", "La"):
        return True
    if im.mode == "P" and "transparency" in im.info:
        return True
    return False


# ----- Encoding -----

def encode(decoded: Decoded, quality: int, method: int = 6, strip_metadata: bool = True) -> bytes:
    """Encode a decoded image as lossy WebP and return the file bytes."""
    kwargs = _build_save_kwargs(decoded, quality, method, strip_metadata)
    buf = io.BytesIO()

    try:
        if isinstance(decoded, MultiFrame):
            _encode_animated(decoded, buf, kwargs)
        else:
            decoded.image.save(buf, **kwargs)
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise EncodeError(str(e) or e.__class__.__name__) from e

    return buf.getvalue()


def _encode_animated(decoded: MultiFrame, buf: io.BytesIO, kwargs: dict) -> None:
    first, rest = decoded.frames[0], decoded.frames[1:]
    first.save(
        buf,
        save_all=True,
        append_images=rest,
        duration=decoded.durations,
        loop=decoded.loop,
        **kwargs,
    )


def _build_save_kwargs(decoded: Decoded, quality: int, method: int, strip_metadata: bool) -> dict:
    kwargs: dict = {
        "format": "WEBP",
        "quality": int(quality),
        "method": int(method),
        "lossless": False,
    }

    # When stripping we simply don't pass exif / icc_profile.
    if not strip_metadata:
        for key in METADATA_KEYS:
            value = decoded.metadata.get(key)
            if value:
                kwargs[key] = value

    return kwargs


def write_output(path: Path, data: bytes) -> None:
    """
    Write data to path atomically.

    The bytes go to a temp file next to the target, which is then renamed
    into place. An interrupted write never leaves a truncated .webp for the
    next run to skip, and two writers racing on one path leave one whole file.
    """
    path = Path(path)

    # Temp file in the output dir so the rename stays on one filesystem.
    fd, tmp_name = tempfile.mkstemp(prefix=".webpify_", suffix=".tmp", dir=str(path.parent))
    os.close(fd)
    tmp_path = Path(tmp_name)

    try:
        with tmp_path.open("wb") as f:
            f.write(data)
        os.chmod(tmp_path, 0o644)  # mkstemp creates 0600
        tmp_path.replace(path)
    finally:
        # Only still there if the replace never happened.
        tmp_path.unlink(missing_ok=True)


# ----- One task, start to finish -----

def convert_task(task: ConversionTask, s: ConvertSettings) -> ConversionResult:
    """
    stat -> decode -> encode -> mkdir + write -> stat for a single file.

    Never raises for per-file problems: every failure comes back as a
    ConversionResult with success=False and the cause in `message`.
    """
    src_path = Path(task.src_path)
    out_path = Path(task.out_path)

    def failed(message: str, original_bytes: int = 0) -> ConversionResult:
        log.debug("conversion failed for %s: %s", src_path, message)
        return ConversionResult(
            src_path=src_path,
            out_path=out_path,
            success=False,
            message=message,
            original_bytes=original_bytes,
        )

    try:
        original_bytes = src_path.stat().st_size
    except OSError as e:
        return failed(f"Cannot stat input: {e}")

    try:
        decoded = decode(src_path, s.animation, auto_orient=s.strip_metadata)
        with decoded:
            data = encode(decoded, s.effective_quality, s.webp_method, s.strip_metadata)
    except DecodeError as e:
        return failed(f"Failed to load image: {e}", original_bytes)
    except EncodeError as e:
        return failed(f"Failed to encode WebP: {e}", original_bytes)
    except Exception as e:
        # Anything else the codec throws still only fails this one file.
        log.debug("unexpected codec error for %s", src_path, exc_info=True)
        return failed(f"Failed to convert image: {e.__class__.__name__}: {e}", original_bytes)

    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return failed(f"Failed to create output dir: {e}", original_bytes)

    try:
        write_output(out_path, data)
    except OSError as e:
        return failed(f"Failed to write output: {e}", original_bytes)

    try:
        new_bytes = out_path.stat().st_size
    except OSError as e:
        return failed(f"Failed to stat output: {e}", original_bytes)

    return ConversionResult(
        src_path=src_path,
        out_path=out_path,
        success=True,
        message="Converted successfully",
        original_bytes=original_bytes,
        new_bytes=new_bytes,
    )
