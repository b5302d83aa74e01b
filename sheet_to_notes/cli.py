"""Command line entry point for the sheet-to-notes pipeline.

Subcommands:
    process  Run the full pipeline over one or more sheet images.
    staff    Detect the staff of a single strip and write its reference table.
    pitch    Map the glyphs of a measure image against a saved reference table.

Exit codes: 0 when everything succeeded, 1 when an image or stage failed,
2 when the configuration is invalid.
"""

import argparse
import logging
import sys
from pathlib import Path

from sheet_to_notes.errors import ConfigurationError, PipelineError
from sheet_to_notes.image_store import (
    ImageStore,
    load_reference_table,
    save_reference_table,
)
from sheet_to_notes.models.settings_models import ProcessingParameters, load_parameters
from sheet_to_notes.pipeline import (
    extract_notes,
    map_pitches,
    process_batch,
    process_binary_image,
    write_report,
)
from sheet_to_notes.staff import detect_staff_reference

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def resolve_log_level(log_level: str | None = None, verbose: int = 0, quiet: int = 0) -> int:
    """Numeric level from ``--log-level``, else INFO shifted by ``-v``/``-q``.

    Each ``-v`` lowers the level one step and each ``-q`` raises it, clamped
    to DEBUG..ERROR.
    """
    if log_level:
        return getattr(logging, log_level.upper())
    level = logging.INFO + 10 * (quiet - verbose)
    return min(max(level, logging.DEBUG), logging.ERROR)


def configure_logging(args: argparse.Namespace) -> None:
    """Send records at the requested level to stderr."""
    level = resolve_log_level(args.log_level, args.verbose, args.quiet)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    logging.getLogger().setLevel(level)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def _load_config(path: str | None) -> ProcessingParameters:
    if path is None:
        return ProcessingParameters()
    return load_parameters(path)


def cmd_process(args: argparse.Namespace) -> int:
    params = _load_config(args.config)

    localizer = params.localizer
    if args.templates is not None:
        localizer = localizer.model_copy(update={"template_folder": args.templates})
    if localizer.template_folder and not Path(localizer.template_folder).is_dir():
        raise ConfigurationError(
            f"Template folder not found: {localizer.template_folder}"
        )
    update = {"localizer": localizer}
    if args.workers is not None:
        update["workers"] = args.workers
    params = params.model_copy(update=update)

    output = Path(args.output)
    reports = process_batch(args.inputs, params, output)
    write_report(reports, output / "report.json")

    failed = [r for r in reports if not r.succeeded]
    logger.info(
        f"Processed {len(reports)} images: {len(reports) - len(failed)} succeeded, "
        f"{len(failed)} failed"
    )
    for report in failed:
        logger.error(f"{report.source}: {report.failed_stage}: {report.reason}")
    return EXIT_FAILED if failed else EXIT_OK


def cmd_staff(args: argparse.Namespace) -> int:
    params = _load_config(args.config)
    image = ImageStore().load(args.strip)

    binary = process_binary_image(image, params.binarize)
    if binary.binary_mask is None:
        logger.error(f"Cannot binarize {args.strip}")
        return EXIT_FAILED

    result = detect_staff_reference(binary.binary_mask, params.staff)
    save_reference_table(result.table, args.output)
    logger.info(f"Wrote {len(result.table)} reference lines to {args.output}")
    print(" ".join(str(y) for y in result.table.reference_lines))
    return EXIT_FAILED if result.detection_failed else EXIT_OK


def cmd_pitch(args: argparse.Namespace) -> int:
    params = _load_config(args.config)
    table = load_reference_table(args.reference)
    image = ImageStore().load(args.measure)

    glyphs = extract_notes(image, params)
    pitches = map_pitches(glyphs, table)

    print(" ".join(note.letter for note in pitches.notes))
    if pitches.final_letter is not None:
        logger.info(f"Final note: {pitches.final_letter}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sheet-to-notes",
        description="Segment sheet music and infer pitch letters",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, type=str.lower)
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More log output")
    parser.add_argument("-q", "--quiet", action="count", default=0, help="Less log output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    process_parser = subparsers.add_parser(
        "process", help="Run the full pipeline over sheet images"
    )
    process_parser.add_argument("inputs", nargs="+", help="Sheet image files")
    process_parser.add_argument(
        "--templates", help="Folder of section templates (default: from config)"
    )
    process_parser.add_argument(
        "--output", "-o", required=True, help="Folder for artifacts and report.json"
    )
    process_parser.add_argument("--config", help="JSON parameter file")
    process_parser.add_argument(
        "--workers", type=_positive_int, help="Worker processes (default: CPU count)"
    )
    process_parser.set_defaults(_cmd=cmd_process)

    staff_parser = subparsers.add_parser(
        "staff", help="Detect staff lines of one strip"
    )
    staff_parser.add_argument("strip", help="Staff strip image")
    staff_parser.add_argument(
        "--output", "-o", required=True, help="Reference table JSON to write"
    )
    staff_parser.add_argument("--config", help="JSON parameter file")
    staff_parser.set_defaults(_cmd=cmd_staff)

    pitch_parser = subparsers.add_parser(
        "pitch", help="Infer pitch letters of one measure"
    )
    pitch_parser.add_argument("measure", help="Measure image")
    pitch_parser.add_argument(
        "--reference", "-r", required=True, help="Reference table JSON"
    )
    pitch_parser.add_argument("--config", help="JSON parameter file")
    pitch_parser.set_defaults(_cmd=cmd_pitch)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args)

    try:
        return args._cmd(args)
    except ConfigurationError as e:
        logger.error(str(e))
        return EXIT_CONFIG
    except PipelineError as e:
        logger.error(str(e))
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
