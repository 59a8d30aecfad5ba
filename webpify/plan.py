from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence


OUTPUT_SUFFIX = ".webp"


@dataclass(frozen=True)
class ConversionTask:
    src_path: Path
    out_path: Path


@dataclass(frozen=True)
class Plan:
    tasks: List[ConversionTask]
    total_found: int
    skipped: int


def build_output_path(src_path: Path, input_dir: Path, output_dir: Path) -> Path:
    # photos/2024/cat.JPG -> <output_dir>/photos/2024/cat.webp
    try:
        rel = Path(src_path).relative_to(input_dir)
    except ValueError:
        rel = Path(Path(src_path).name)
    return Path(output_dir) / rel.with_suffix(OUTPUT_SUFFIX)


def plan_conversions(images: Sequence[Path], input_dir: Path, output_dir: Path) -> Plan:
    """
    Pair every scanned image with its mirrored output path.

    Images whose output already exists are left out and counted as
    skipped. Only the output path is checked: a changed source under an
    unchanged name is not reconverted. No directories are created here;
    workers create them when they write.
    """
    input_dir = Path(input_dir).absolute()
    output_dir = Path(output_dir).absolute()

    tasks: List[ConversionTask] = []
    skipped = 0

    for src in images:
        out = build_output_path(Path(src).absolute(), input_dir, output_dir)
        if out.exists():
            skipped += 1
            continue
        tasks.append(ConversionTask(src_path=Path(src), out_path=out))

    return Plan(tasks=tasks, total_found=len(images), skipped=skipped)
