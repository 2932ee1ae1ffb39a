"""Command line interface for the Pageshift translator."""

from __future__ import annotations

import argparse
import asyncio
import pathlib
import re
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from .configuration import get_settings
from .documents import detect_handler
from .errors import (
    OverwriteRefusedError,
    PageshiftError,
    TranslationProviderConfigurationError,
    UnsupportedFileTypeError,
)
from .logger import configure_logging
from .providers import build_detector_factory, build_translator_factory
from .selection import SelectionStatus, SelectionTranslationPipeline
from .session import PageTranslationSession
from .whitelist import is_url_whitelisted


@dataclass
class TranslationSummary:
    """Report returned after processing a document."""

    input_path: pathlib.Path
    output_path: pathlib.Path
    document_type: str
    total_nodes: int
    translated_nodes: int
    skipped_nodes: int
    total_errors: int
    provider_name: str
    requested_language: str
    target_language: str
    source_language: str | None
    elapsed_seconds: float
    error_messages: List[str] = field(default_factory=list)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pageshift",
        description="Translate the text of HTML pages in place while preserving layout.",
    )
    parser.add_argument(
        "input_file",
        nargs="?",
        help="Path to the .html file to translate.",
    )
    parser.add_argument(
        "-t",
        "--target-language",
        help="Destination language code (default: configured target language).",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to appending the target language code.",
    )
    parser.add_argument(
        "-p",
        "--provider",
        help="Translation provider identifier (openai or echo).",
    )
    parser.add_argument(
        "-d",
        "--detector",
        help="Language detector identifier (langdetect or none).",
    )
    parser.add_argument(
        "-u",
        "--url",
        help="Address the page was fetched from; whitelisted pages are skipped.",
    )
    parser.add_argument(
        "--text",
        help="Translate a text fragment the way a page selection is translated.",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    return parser


def sanitise_language_for_filename(language: str) -> str:
    """Generate a filesystem-friendly suffix from a language code."""

    collapsed = re.sub(r"\s+", "-", language.strip())
    ascii_only = collapsed.encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^A-Za-z0-9\-]+", "", ascii_only)
    return cleaned or "translated"


def derive_output_path(input_path: pathlib.Path, language: str) -> pathlib.Path:
    addition = sanitise_language_for_filename(language)
    return input_path.with_name(f"{input_path.stem}_{addition}{input_path.suffix}")


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FileNotFoundError(
            "Input file not found. Please provide a readable .html file."
        )
    if not input_path.is_file():
        raise PageshiftError("Input path must be a file.")

    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input document. Refusing to overwrite the source file."
        )

    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists. Rename it or use the overwrite flag."
        )


async def _translate_page(session: PageTranslationSession, target_language: str) -> None:
    await session.start(target_language)
    await session.watcher.wait_idle()
    session.watcher.stop()


def execute_translation(
    *,
    input_file: str,
    output_file: str | None,
    target_language: str,
    provider: str | None,
    detector: str | None,
    force_overwrite: bool,
    verbose: bool,
    settings: Any = None,
    provider_debug: bool = False,
) -> tuple[int, TranslationSummary | None, str | None]:
    """Execute a translation run and return the exit code, summary, and message."""

    input_path = pathlib.Path(input_file).expanduser().resolve()
    output_path = (
        pathlib.Path(output_file).expanduser().resolve()
        if output_file
        else derive_output_path(input_path, target_language)
    )

    try:
        validate_paths(input_path, output_path, force_overwrite=force_overwrite)
    except FileNotFoundError as exc:
        return 1, None, str(exc)
    except PageshiftError as exc:
        return 1, None, str(exc)

    start_time = time.time()
    try:
        document_type, handler = detect_handler(input_path)
        session = PageTranslationSession(
            handler.document,
            build_translator_factory(provider, settings=settings, debug=provider_debug),
            build_detector_factory(detector),
            status_callback=print if verbose else None,
        )
        asyncio.run(_translate_page(session, target_language))
        output_path.parent.mkdir(parents=True, exist_ok=True)
        handler.save(output_path)
    except UnsupportedFileTypeError as exc:
        return 1, None, str(exc)
    except TranslationProviderConfigurationError as exc:
        return 1, None, str(exc)
    except PageshiftError as exc:
        return 1, None, str(exc)
    except KeyboardInterrupt:
        return 2, None, "Translation interrupted by user."

    total = session.progress.total
    translated = sum(1 for node, original in session.registry.items() if node.value != original)
    summary = TranslationSummary(
        input_path=input_path,
        output_path=output_path,
        document_type=document_type,
        total_nodes=total,
        translated_nodes=translated,
        skipped_nodes=max(total - translated, 0),
        total_errors=len(session.errors),
        provider_name=provider or "openai",
        requested_language=target_language,
        target_language=session.state.current_target_lang,
        source_language=session.source_lang,
        elapsed_seconds=time.time() - start_time,
        error_messages=session.errors.messages,
    )
    return 0, summary, None


def execute_text_translation(
    *,
    text: str,
    target_language: str,
    provider: str | None,
    detector: str | None,
    settings: Any = None,
    provider_debug: bool = False,
) -> tuple[int, str]:
    """Translate one fragment through the selection pipeline."""

    try:
        pipeline = SelectionTranslationPipeline(
            build_translator_factory(provider, settings=settings, debug=provider_debug),
            build_detector_factory(detector),
            selection_provider=lambda: text,
            target_lang=target_language,
            enabled=True,
        )
    except PageshiftError as exc:
        return 1, str(exc)

    async def run():
        try:
            return await pipeline.evaluate()
        finally:
            pipeline.close()

    outcome = asyncio.run(run())
    if outcome.status is SelectionStatus.TRANSLATED:
        return 0, outcome.translation or ""
    if outcome.status is SelectionStatus.UNCHANGED:
        return 0, text.strip()
    return 1, outcome.message or f"Nothing translated ({outcome.status.value})."


def print_summary(summary: TranslationSummary) -> None:
    """Output a friendly report once processing completes."""

    print("\nTranslation complete.")
    print(f"  Input file:      {summary.input_path}")
    print(f"  Output file:     {summary.output_path}")
    print(f"  Document type:   {summary.document_type}")
    print(
        "  Text nodes:      "
        f"{summary.translated_nodes} translated / {summary.total_nodes} total "
        f"({summary.skipped_nodes} skipped)"
    )
    print(f"  Provider:        {summary.provider_name}")
    if summary.source_language:
        print(f"  Source language: {summary.source_language}")
    if summary.target_language != summary.requested_language:
        print(
            f"  Target language: {summary.target_language} "
            f"(requested {summary.requested_language})"
        )
    else:
        print(f"  Target language: {summary.target_language}")
    print(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")
    if summary.total_errors:
        print("  Notes:")
        for message in summary.error_messages:
            print(f"    - {message}")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    provider = args.provider
    try:
        settings = get_settings()
    except TranslationProviderConfigurationError as exc:
        if (provider or "").strip().lower() != "echo":
            print(exc)
            return 1
        settings = None

    log_mode = "debug" if args.verbose else getattr(settings, "PAGESHIFT_LOG_MODE", "info")
    configure_logging(log_mode)
    provider = provider or getattr(settings, "PAGESHIFT_PROVIDER", None)
    detector = args.detector or getattr(settings, "PAGESHIFT_DETECTOR", None)
    provider_debug = bool(
        args.debug_provider or getattr(settings, "PAGESHIFT_PROVIDER_DEBUG", False)
    )
    target_language = args.target_language or getattr(
        settings, "AUTO_TRANSLATE_TARGET_LANG", "zh-Hans"
    )

    if args.text is not None:
        exit_code, output = execute_text_translation(
            text=args.text,
            target_language=target_language,
            provider=provider,
            detector=detector,
            settings=settings,
            provider_debug=provider_debug,
        )
        print(output)
        return exit_code

    if args.input_file is None:
        parser.error("the following arguments are required: input_file")

    if args.url and is_url_whitelisted(args.url, getattr(settings, "WHITELIST_PATTERNS", None)):
        print(f"{args.url} is whitelisted; skipping translation.")
        return 0

    exit_code, summary, message = execute_translation(
        input_file=args.input_file,
        output_file=args.output,
        target_language=target_language,
        provider=provider,
        detector=detector,
        force_overwrite=args.force,
        verbose=args.verbose,
        settings=settings,
        provider_debug=provider_debug,
    )

    if message:
        print(message)
    if summary:
        print_summary(summary)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
