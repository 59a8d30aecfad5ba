from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from .batch import process_batch
from .engine import check_environment
from .errors import EnvironmentCheckError
from .plan import plan_conversions
from .report import (
    RULE_WIDTH,
    build_report,
    format_timestamp,
    progress_line,
    save_report,
    summary_lines,
)
from .results import ConversionResult
from .scan import SUPPORTED_EXTS, scan_images
from .settings import (
    DEFAULT_INPUT_DIR,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_QUALITY,
    ConvertSettings,
    clamp_quality,
)


log = logging.getLogger(__name__)

BANNER = (
    "╔════════════════════════════════════════════╗\n"
    "║     Image to WebP Converter                ║\n"
    "╚════════════════════════════════════════════╝"
)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="webpify",
        description="Convert a folder tree of JPEG/PNG/GIF/BMP/TIFF images to WebP.",
        epilog=(
            "Examples:\n"
            "  webpify\n"
            "  webpify -q 90\n"
            "  webpify --quality 75 --input ./photos --output ./webp -w 8"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    p.add_argument("-q", "--quality", type=int, default=DEFAULT_QUALITY,
                   help=f"WebP quality 1-100, out-of-range values are clamped (default: {DEFAULT_QUALITY})")
    p.add_argument("-i", "--input", default=str(DEFAULT_INPUT_DIR),
                   help=f"Input directory (default: {DEFAULT_INPUT_DIR})")
    p.add_argument("-o", "--output", default=str(DEFAULT_OUTPUT_DIR),
                   help=f"Output directory (default: {DEFAULT_OUTPUT_DIR})")
    p.add_argument("-w", "--workers", type=int, default=0,
                   help="Number of parallel workers (default: CPU cores)")

    p.add_argument("--first-frame-only", action="store_true",
                   help="Convert only the first frame of animated images")
    p.add_argument("--keep-metadata", action="store_true",
                   help="Keep EXIF / ICC profile instead of stripping it")
    p.add_argument("--report", default=None,
                   help="Also write a run report (JSON, or CSV if the path ends in .csv)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")

    return p


def settings_from_args(args: argparse.Namespace) -> ConvertSettings:
    return ConvertSettings(
        input_dir=Path(args.input),
        output_dir=Path(args.output),
        quality=clamp_quality(args.quality),
        workers=args.workers if args.workers > 0 else None,
        animation="first" if args.first_frame_only else "keep",
        strip_metadata=not args.keep_metadata,
    )


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _print_progress(index: int, total: int, r: ConversionResult) -> None:
    # Called under the aggregator lock, so lines never interleave.
    print(progress_line(index, total, r), flush=True)


def run(settings: ConvertSettings, report_path: Optional[Path] = None) -> int:
    print()
    print(BANNER)
    print()
    print("Started at:", format_timestamp(datetime.now().astimezone()))
    print()
    print("Configuration:")
    print(f"  • Input directory:  {settings.input_dir}")
    print(f"  • Output directory: {settings.output_dir}")
    print(f"  • Quality:          {settings.effective_quality}%")
    print(f"  • Workers:          {settings.effective_workers}")
    print()

    try:
        check_environment(settings)
        images = scan_images(settings.input_dir)
    except EnvironmentCheckError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not images:
        print(f"⚠ No images found in {settings.input_dir}")
        print("  Supported formats:", ", ".join(sorted(ext.lstrip(".") for ext in SUPPORTED_EXTS)))
        return 0

    print(f"Found {len(images)} image(s)")

    plan = plan_conversions(images, settings.input_dir, settings.output_dir)
    if plan.skipped:
        print(f"  ⏭ Skipped {plan.skipped} file(s) (already converted)")

    if not plan.tasks:
        print("  All files already converted. Nothing to do.")
        return 0

    print(f"  Converting {len(plan.tasks)} file(s)")
    print("-" * RULE_WIDTH)

    results, summary = process_batch(
        plan.tasks,
        settings,
        on_result=_print_progress,
        total_found=plan.total_found,
        skipped=plan.skipped,
    )

    print()
    for line in summary_lines(summary):
        print(line)
    print()
    print("Output directory:", settings.output_dir)

    if report_path is not None:
        try:
            written = save_report(build_report(results, summary), report_path)
            print("Report written:  ", written)
        except OSError as e:
            print(f"Error: failed to write report: {e}", file=sys.stderr)

    print()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)
    log.debug("arguments: %s", vars(args))

    settings = settings_from_args(args)
    report_path = Path(args.report) if args.report else None
    return run(settings, report_path=report_path)
