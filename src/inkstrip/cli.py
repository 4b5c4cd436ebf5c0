"""CLI entry point for InkStrip."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from inkstrip import __version__, logger
from inkstrip.backends import build_tuning_source
from inkstrip.dependencies import (
    ensure_cli_dependencies_for_clean,
    ensure_cli_dependencies_for_preview,
    ensure_package_dependencies,
)
from inkstrip.exceptions import PackageError
from inkstrip.export import ARCHIVE_NAME, export_archive, export_job, output_name, unique_name
from inkstrip.logging import configure_logging
from inkstrip.orchestrator import BatchOrchestrator
from inkstrip.settings import get_settings
from inkstrip.state_store import FileKeyValueStore, SessionStore
from inkstrip.tuning import TuningResolver
from inkstrip.viewer import PreviewSurface
from inkstrip.workspace import Workspace

if TYPE_CHECKING:
    from collections.abc import Sequence

    from inkstrip.settings import Settings
    from inkstrip.typing.models import BatchRun, PixelBuffer
    from inkstrip.typing.protocol import DocumentCodec

_INTERRUPTED_EXIT_CODE = 130


def _positive_float(value: str) -> float:
    """Parse a strictly positive float CLI value.

    Args:
        value (str): Raw CLI value.

    Raises:
        argparse.ArgumentTypeError: If the value is not a positive number.

    Returns:
        float: Parsed value.
    """
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--scale must be a number") from exc  # noqa: TRY003
    if parsed <= 0:
        raise argparse.ArgumentTypeError("--scale must be positive")  # noqa: TRY003
    return parsed


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--page must be an integer") from exc  # noqa: TRY003
    if parsed < 1:
        raise argparse.ArgumentTypeError("--page must be at least 1")  # noqa: TRY003
    return parsed


def _add_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--output-dir", type=Path, default=None, dest="output_dir")
    parser.add_argument("--archive", action="store_true", help=f"Write a single {ARCHIVE_NAME}")
    parser.add_argument("--scale", type=_positive_float, default=None, help="Working render scale")
    parser.add_argument("--no-tuning", action="store_true", dest="no_tuning")
    parser.add_argument("--aggressive-prompt", action="store_true", dest="aggressive_prompt")
    parser.add_argument("--state-dir", type=Path, default=None, dest="state_dir")


def build_parser() -> argparse.ArgumentParser:
    """Create the command-line parser.

    Returns:
        argparse.ArgumentParser: The configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="inkstrip")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command")

    clean_parser = subparsers.add_parser("clean", help="Remove red annotations from scanned PDF files")
    clean_parser.add_argument("inputs", nargs="+", type=Path, metavar="INPUT")
    _add_output_arguments(clean_parser)

    resume_parser = subparsers.add_parser(
        "resume",
        help="Continue the session persisted in the state directory",
    )
    _add_output_arguments(resume_parser)

    reset_parser = subparsers.add_parser("reset", help="Clear persisted session state")
    reset_parser.add_argument("--state-dir", type=Path, default=None, dest="state_dir")

    preview_parser = subparsers.add_parser("preview", help="Render one page at the preview scale as PNG")
    preview_parser.add_argument("input", type=Path, metavar="INPUT")
    preview_parser.add_argument("--page", type=_positive_int, default=1, help="Page number, 1-based")
    preview_parser.add_argument("--scale", type=_positive_float, default=None, help="Preview render scale")
    preview_parser.add_argument("--output", type=Path, default=None, help="PNG file to write")

    return parser


def _session_store(args: argparse.Namespace, settings: Settings) -> SessionStore:
    """Open the session store under `--state-dir` or the configured directory."""
    root = args.state_dir if args.state_dir is not None else Path(settings.state_dir)
    return SessionStore(FileKeyValueStore(root=root))


def _build_codec() -> DocumentCodec:
    """Return the PDF codec; PyMuPDF is only imported once dependencies are checked."""
    from inkstrip.pdf_codec import PdfCodec  # noqa: PLC0415

    return PdfCodec()


def _build_orchestrator(
    args: argparse.Namespace,
    settings: Settings,
    codec: DocumentCodec,
    session: SessionStore,
) -> BatchOrchestrator:
    """Wire resolver and orchestrator from CLI arguments and settings."""
    source = None
    if not args.no_tuning:
        source = build_tuning_source(settings, aggressive_prompt=args.aggressive_prompt)
    if source is None:
        logger.info("Tuning service disabled; using default thresholds")
    return BatchOrchestrator(
        codec,
        TuningResolver(source),
        working_scale=args.scale if args.scale is not None else settings.working_scale,
        session=session,
    )


def _read_inputs(paths: Sequence[Path]) -> list[tuple[str, bytes]]:
    """Read input files, skipping unreadable ones.

    Args:
        paths (Sequence[Path]): Input paths.

    Returns:
        list[tuple[str, bytes]]: File names and contents.
    """
    files: list[tuple[str, bytes]] = []
    for path in paths:
        try:
            files.append((path.name, path.read_bytes()))
        except OSError as exc:
            logger.error("Cannot read input", extra={"path": str(path), "error": str(exc)})
    return files


def write_outputs(run: BatchRun, codec: DocumentCodec, output_dir: Path, *, archive: bool) -> list[Path]:
    """Write cleaned documents of a finished run.

    Jobs that stopped early still export the pages they completed.

    Args:
        run (BatchRun): Finished batch run.
        codec (DocumentCodec): Codec assembling documents.
        output_dir (Path): Destination directory.
        archive (bool): Bundle every document into one ZIP archive.

    Raises:
        ExportError: If archive mode has nothing to write.

    Returns:
        list[Path]: Written files.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    if archive:
        target = output_dir / ARCHIVE_NAME
        target.write_bytes(export_archive(run.jobs, codec))
        return [target]

    written: list[Path] = []
    used: set[str] = set()
    for job in run.jobs:
        pages = job.cleaned_pages()
        if not pages:
            continue
        name = unique_name(output_name(job.name, len(pages)), used)
        used.add(name)
        target = output_dir / name
        target.write_bytes(export_job(job, codec))
        written.append(target)
    return written


def _print_summary(run: BatchRun) -> None:
    for job in run.jobs:
        completed, total = job.progress
        line = f"{job.name}: {job.status.to_str()} ({completed}/{total} pages)"
        if job.error:
            line = f"{line} - {job.error}"
        sys.stdout.write(f"{line}\n")


def _run_batch(args: argparse.Namespace, settings: Settings) -> int:
    """Run `clean` or `resume` and write the outputs.

    Returns:
        int: 0 when every document is done, 1 otherwise.
    """
    ensure_package_dependencies()
    ensure_cli_dependencies_for_clean()
    codec = _build_codec()
    session = _session_store(args, settings)
    orchestrator = _build_orchestrator(args, settings, codec, session)

    if args.command == "resume":
        workspace = Workspace.restore(orchestrator, session, codec, max_files=settings.max_upload_files)
        if not workspace.documents:
            logger.warning("No persisted session to resume")
            return 1
    else:
        workspace = Workspace(orchestrator, session=session, max_files=settings.max_upload_files)
        workspace.reset()
        outcome = workspace.add(_read_inputs(args.inputs))
        if not outcome.added:
            logger.error("No PDF input to process")
            return 1

    run = asyncio.run(workspace.process_all(resume=args.command == "resume"))
    output_dir = args.output_dir if args.output_dir is not None else Path(settings.output_dir)
    written = write_outputs(run, codec, output_dir, archive=args.archive)
    _print_summary(run)
    logger.info("Clean completed", extra={"outputs": [str(path) for path in written]})
    return 0 if run.succeeded else 1


async def _render_preview(
    surface: PreviewSurface,
    data: bytes,
    identity: str,
    page_number: int,
) -> PixelBuffer | None:
    try:
        await surface.load(data, identity)
        return await surface.show(page_number)
    finally:
        surface.close()


def _run_preview(args: argparse.Namespace, settings: Settings) -> int:
    """Render one page through the preview surface and write it as PNG.

    Returns:
        int: 0 when the PNG was written, 1 otherwise.
    """
    ensure_cli_dependencies_for_preview()
    codec = _build_codec()
    surface = PreviewSurface(codec, scale=args.scale if args.scale is not None else settings.preview_scale)
    try:
        data = args.input.read_bytes()
    except OSError as exc:
        logger.error("Cannot read input", extra={"path": str(args.input), "error": str(exc)})
        return 1

    raster = asyncio.run(_render_preview(surface, data, args.input.name, args.page))
    if raster is None:
        logger.warning("Preview render was superseded", extra={"path": str(args.input)})
        return 1

    target = args.output if args.output is not None else Path(f"{args.input.stem}_page{args.page}.png")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(codec.encode_png(raster))
    logger.info(
        "Preview written",
        extra={"path": str(target), "page": args.page, "scale": surface.scale},
    )
    sys.stdout.write(f"{target}\n")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI.

    Args:
        argv (Sequence[str] | None): Arguments, defaulting to `sys.argv[1:]`.

    Returns:
        int: Exit code (0 for success, 1 for error, 130 when interrupted).
    """
    settings = get_settings()
    configure_logging(settings=settings)

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "reset":
            _session_store(args, settings).clear_all()
            logger.info("Session state cleared")
            return 0
        if args.command == "preview":
            return _run_preview(args, settings)
        return _run_batch(args, settings)
    except PackageError:
        logger.exception("Command failed")
        return 1
    except KeyboardInterrupt:
        logger.info("Command aborted by user")
        return _INTERRUPTED_EXIT_CODE
    except Exception:
        logger.exception("Unexpected error")
        return 1
    finally:
        settings.close_httpx_clients()


if __name__ == "__main__":
    raise SystemExit(main())
