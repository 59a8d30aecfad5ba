from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


def savings_percent(original_bytes: int, new_bytes: int) -> float:
    """round((1 - new/original) * 100, 2), or 0.0 for an empty original."""
    if original_bytes <= 0:
        return 0.0
    return round((1.0 - new_bytes / original_bytes) * 100.0, 2)


@dataclass(frozen=True)
class ConversionResult:
    """
    Outcome of converting a single image.

    Produced once per task by a worker and never mutated afterwards.
    On failure `message` holds the cause and new_bytes is 0.
    """
    src_path: Path
    out_path: Path
    success: bool
    message: str
    original_bytes: int = 0
    new_bytes: int = 0

    @property
    def savings_percent(self) -> float:
        # Negative when the WebP came out larger than the source.
        return savings_percent(self.original_bytes, self.new_bytes)
