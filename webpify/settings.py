from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional


# "keep" re-encodes every frame of an animation, "first" keeps frame 0 only.
AnimationPolicy = Literal["keep", "first"]

DEFAULT_INPUT_DIR = Path("/app/images")
DEFAULT_OUTPUT_DIR = Path("/app/output")
DEFAULT_QUALITY = 80
FALLBACK_WORKERS = 4


@dataclass(frozen=True)
class ConvertSettings:
    """
    All user-configurable knobs for a conversion run.

    Pure data object: the CLI builds it, everything else only reads it.
    """

    # ----- Locations -----
    input_dir: Path = DEFAULT_INPUT_DIR
    output_dir: Path = DEFAULT_OUTPUT_DIR

    # ----- WebP encoding -----
    quality: int = DEFAULT_QUALITY
    webp_method: int = 6  # 0-6, 6 = slowest but smallest

    # ----- Metadata -----
    strip_metadata: bool = True

    # ----- Animated inputs -----
    animation: AnimationPolicy = "keep"

    # ----- Concurrency -----
    # None (or <= 0) means one worker per CPU core.
    workers: Optional[int] = None

    @property
    def effective_quality(self) -> int:
        return clamp_quality(self.quality)

    @property
    def effective_workers(self) -> int:
        return resolve_workers(self.workers)


def clamp_quality(quality: int) -> int:
    """Out-of-range qualities are pulled into [1, 100], never rejected."""
    return max(1, min(100, int(quality)))


def resolve_workers(workers: Optional[int]) -> int:
    if workers is not None and workers > 0:
        return int(workers)
    return os.cpu_count() or FALLBACK_WORKERS
