from __future__ import annotations

import argparse
import json
import socket
import sys
import time
from dataclasses import replace
from pathlib import Path

import uvicorn
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .book_io import load_document, summarize_document, write_document_json
from .capacity import CharacterCapacity, Viewport, calculate_responsive_font_size, capacity_to_payload
from .layout import Page, page_to_payload
from .logging_utils import LOG_LEVELS, build_uvicorn_log_config, collect_parser_warnings
from .nodes import ParsedDocument, document_to_payload, extract_text
from .pagination import divide_into_pages, get_nodes_from_page, set_debug_logging
from .parser import format_markup
from .settings import ReaderSettings, load_settings
from .watch import watch_file
from .web import WebConfig, create_app

_ZERO_CAPACITY_MESSAGE = (
    "Viewport cannot hold any characters; increase its size or reduce font size, "
    "line height or padding."
)
_PREVIEW_LENGTH = 24


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"kumihan {__version__}",
    )


def _add_layout_arguments(ap: argparse.ArgumentParser, *, viewport_required: bool = False) -> None:
    ap.add_argument(
        "-W",
        "--width",
        type=float,
        required=viewport_required,
        default=None if viewport_required else 800.0,
        help="Viewport width in px (default: 800).",
    )
    ap.add_argument(
        "-H",
        "--height",
        type=float,
        required=viewport_required,
        default=None if viewport_required else 600.0,
        help="Viewport height in px (default: 600).",
    )
    ap.add_argument(
        "--horizontal",
        action="store_true",
        help="Lay text out left-to-right instead of in vertical columns.",
    )
    ap.add_argument("--font-size", type=float, help="Font size in px (default: from settings).")
    ap.add_argument(
        "--line-height",
        type=float,
        help="Line height as a multiple of the font size (default: from settings).",
    )
    ap.add_argument(
        "--settings",
        help="Path to a settings JSON file (default: $KUMIHAN_SETTINGS or ~/.kumihan/settings.json).",
    )


def _add_pagination_flags(ap: argparse.ArgumentParser) -> None:
    ap.add_argument(
        "--semantic",
        action="store_true",
        help="Prefer sentence and paragraph boundaries when a line overflows a page.",
    )
    ap.add_argument(
        "--content-aware",
        action="store_true",
        help="Shrink page capacity for ruby- and annotation-dense text.",
    )
    ap.add_argument(
        "--no-line-breaking",
        action="store_true",
        help="Disable kinsoku line breaking of long lines.",
    )
    ap.add_argument("--debug", action="store_true", help="Print page-break decisions to stderr.")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description=(
            "Paginate an Aozora Bunko text for a given viewport. "
            "Use `kumihan parse`, `kumihan capacity`, `kumihan web` or `kumihan watch` for the other tools."
        ),
    )
    _add_version_flag(ap)
    ap.add_argument("input_path", help="Path to an Aozora Bunko formatted .txt file.")
    _add_layout_arguments(ap)
    _add_pagination_flags(ap)
    ap.add_argument("--json", action="store_true", help="Print pages as JSON instead of a table.")
    ap.add_argument("--page", type=int, help="Print the text of a single page (1-based).")
    return ap


def build_parse_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Parse Aozora Bunko markup into a node tree.")
    _add_version_flag(ap)
    ap.add_argument("input_path", help="Path to an Aozora Bunko formatted .txt file.")
    ap.add_argument(
        "--format",
        choices=["json", "markup"],
        default="json",
        help="Output the node tree as JSON (default) or re-serialized markup.",
    )
    ap.add_argument("-o", "--output", help="Write the result to this file instead of stdout.")
    return ap


def build_capacity_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Show how many characters a viewport holds.")
    _add_version_flag(ap)
    _add_layout_arguments(ap, viewport_required=True)
    ap.add_argument(
        "--chars-per-line",
        type=int,
        help="Also suggest the largest font size that fits this many characters per line.",
    )
    ap.add_argument("--json", action="store_true", help="Print the capacity as JSON.")
    return ap


def build_web_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Serve the parse and pagination HTTP API.")
    _add_version_flag(ap)
    ap.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the web server (default: 127.0.0.1).",
    )
    ap.add_argument(
        "--port",
        type=int,
        default=2047,
        help="Port for the web server (default: 2047).",
    )
    ap.add_argument(
        "--settings",
        help="Settings JSON used as the default for every request.",
    )
    ap.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default="info",
        help="Server log level (default: info).",
    )
    ap.add_argument(
        "--no-access-log",
        action="store_true",
        help="Hide per-request access lines.",
    )
    return ap


def build_watch_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Re-paginate a text file whenever it changes.")
    _add_version_flag(ap)
    ap.add_argument("input_path", help="Path to an Aozora Bunko formatted .txt file.")
    _add_layout_arguments(ap)
    _add_pagination_flags(ap)
    ap.add_argument(
        "--delay",
        type=float,
        default=0.3,
        help="Seconds the file must stay unchanged before re-paginating (default: 0.3).",
    )
    return ap


def _resolve_settings(args: argparse.Namespace) -> ReaderSettings:
    try:
        settings = load_settings(Path(args.settings).expanduser() if args.settings else None)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    updates: dict[str, object] = {}
    if getattr(args, "horizontal", False):
        updates["vertical_mode"] = False
    if getattr(args, "font_size", None) is not None:
        updates["font_size"] = args.font_size
    if getattr(args, "line_height", None) is not None:
        updates["line_height"] = args.line_height
    if getattr(args, "semantic", False):
        updates["enable_semantic_boundaries"] = True
    if getattr(args, "content_aware", False):
        updates["enable_content_aware_capacity"] = True
    if getattr(args, "no_line_breaking", False):
        updates["enable_line_breaking"] = False
    return replace(settings, **updates)


def _require_capacity(settings: ReaderSettings, width: float, height: float) -> CharacterCapacity:
    capacity = settings.capacity_for(width, height)
    if not capacity.is_ready:
        raise SystemExit(_ZERO_CAPACITY_MESSAGE)
    return capacity


def _load_input(path: Path, console: Console) -> ParsedDocument:
    if not path.exists():
        raise SystemExit(f"Input path not found: {path}")
    if not path.is_file():
        raise SystemExit(f"Input must be a file: {path}")
    try:
        document, messages = collect_parser_warnings(lambda: load_document(path))
    except OSError as exc:
        raise SystemExit(str(exc)) from exc
    for message in messages:
        console.print(f"[yellow]warning:[/yellow] {escape(message)}", highlight=False)
    return document


def _page_text(page: Page) -> str:
    return extract_text(get_nodes_from_page(page))


def _preview(text: str) -> str:
    flat = text.replace("\n", " ").strip()
    if len(flat) > _PREVIEW_LENGTH:
        return flat[:_PREVIEW_LENGTH] + "…"
    return flat


def _paginate(
    path: Path,
    settings: ReaderSettings,
    width: float,
    height: float,
    console: Console,
) -> tuple[ParsedDocument, CharacterCapacity, list[Page]]:
    capacity = _require_capacity(settings, width, height)
    document = _load_input(path, console)
    pages = divide_into_pages(document.nodes, capacity, settings.orientation, settings.page_options())
    return document, capacity, pages


def _print_page_table(
    console: Console,
    document: ParsedDocument,
    capacity: CharacterCapacity,
    pages: list[Page],
) -> None:
    summary = summarize_document(document)
    title = summary.title or "Untitled"
    table = Table(title=escape(f"{title} ({len(pages)} pages, {capacity.total_characters} chars/page)"))
    table.add_column("Page", justify="right")
    table.add_column("Lines", justify="right")
    table.add_column("Slots", justify="right")
    table.add_column("Starts with")
    for number, page in enumerate(pages, start=1):
        table.add_row(
            str(number),
            str(len(page.lines)),
            str(page.total_characters),
            escape(_preview(_page_text(page))),
        )
    console.print(table)


def _run_paginate(args: argparse.Namespace) -> int:
    set_debug_logging(args.debug)
    err_console = Console(stderr=True)
    settings = _resolve_settings(args)
    path = Path(args.input_path).expanduser()
    document, capacity, pages = _paginate(path, settings, args.width, args.height, err_console)

    if args.page is not None:
        if not 1 <= args.page <= len(pages):
            raise SystemExit(f"Page {args.page} out of range (document has {len(pages)} pages).")
        page = pages[args.page - 1]
        if args.json:
            print(json.dumps(page_to_payload(page), ensure_ascii=False, indent=2))
        else:
            print(_page_text(page))
        return 0

    if args.json:
        payload = {
            "orientation": settings.orientation,
            "capacity": capacity_to_payload(capacity),
            "total_pages": len(pages),
            "pages": [page_to_payload(page) for page in pages],
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    _print_page_table(Console(), document, capacity, pages)
    return 0


def _run_parse(args: argparse.Namespace) -> int:
    err_console = Console(stderr=True)
    path = Path(args.input_path).expanduser()
    document = _load_input(path, err_console)
    if args.format == "json":
        if args.output:
            written = write_document_json(Path(args.output).expanduser(), document)
            err_console.print(f"Wrote {written}")
            return 0
        print(json.dumps(document_to_payload(document), ensure_ascii=False, indent=2))
        return 0
    markup = format_markup(document.nodes)
    if args.output:
        output_path = Path(args.output).expanduser()
        output_path.write_text(markup, encoding="utf-8")
        err_console.print(f"Wrote {output_path}")
        return 0
    sys.stdout.write(markup)
    return 0


def _run_capacity(args: argparse.Namespace) -> int:
    settings = _resolve_settings(args)
    capacity = settings.capacity_for(args.width, args.height)
    extra: dict[str, int] = {}
    if args.chars_per_line:
        extra["suggested_font_size"] = calculate_responsive_font_size(
            Viewport(args.width, args.height),
            args.chars_per_line,
            settings.padding(),
            settings.orientation,
        )
    if args.json:
        payload = {
            "orientation": settings.orientation,
            "ready": capacity.is_ready,
            **capacity_to_payload(capacity),
            **extra,
        }
        print(json.dumps(payload, indent=2))
        return 0
    console = Console()
    table = Table(title=f"{args.width:g}×{args.height:g} px, {settings.orientation}")
    table.add_column("Field")
    table.add_column("Value", justify="right")
    for key, value in {**capacity_to_payload(capacity), **extra}.items():
        table.add_row(key, str(value))
    console.print(table)
    if not capacity.is_ready:
        Console(stderr=True).print(f"[yellow]{_ZERO_CAPACITY_MESSAGE}[/yellow]")
    return 0


def _run_web(args: argparse.Namespace) -> None:
    try:
        settings = load_settings(Path(args.settings).expanduser() if args.settings else None)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    app = create_app(WebConfig(settings=settings))
    public_ip = _resolve_local_ip(args.host)
    url = f"http://{public_ip}:{args.port}/api/health"
    print(f"Serving kumihan API ({settings.orientation} by default)")
    print(f"Health check: {url}")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        log_config=build_uvicorn_log_config(args.log_level, access_log=not args.no_access_log),
    )


def _run_watch(args: argparse.Namespace) -> int:
    set_debug_logging(args.debug)
    console = Console(stderr=True)
    settings = _resolve_settings(args)
    path = Path(args.input_path).expanduser()
    _require_capacity(settings, args.width, args.height)

    def _report(changed: Path) -> None:
        try:
            _, _, pages = _paginate(changed, settings, args.width, args.height, console)
        except SystemExit as exc:
            console.print(f"[red]{escape(str(exc))}[/red]")
            return
        stamp = time.strftime("%H:%M:%S")
        console.print(escape(f"[{stamp}] {changed.name}: {len(pages)} pages"), highlight=False)

    _report(path.resolve())
    observer, handler = watch_file(path, _report, delay=args.delay)
    console.print(f"Watching {path}. Press Ctrl+C to stop.")
    try:
        while observer.is_alive():
            observer.join(timeout=0.5)
    except KeyboardInterrupt:
        console.print("\nStopping kumihan watch...")
    finally:
        handler.cancel()
        observer.stop()
        observer.join()
    return 0


def _resolve_local_ip(host: str) -> str:
    if host not in {"", "0.0.0.0"}:
        return host
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] == "parse":
        return _run_parse(build_parse_parser().parse_args(argv[1:]))
    if argv and argv[0] == "capacity":
        return _run_capacity(build_capacity_parser().parse_args(argv[1:]))
    if argv and argv[0] == "web":
        _run_web(build_web_parser().parse_args(argv[1:]))
        return 0
    if argv and argv[0] == "watch":
        return _run_watch(build_watch_parser().parse_args(argv[1:]))

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    return _run_paginate(parser.parse_args(argv))


if __name__ == "__main__":
    raise SystemExit(main())
