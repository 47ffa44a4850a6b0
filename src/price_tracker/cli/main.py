from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Callable, Optional, Sequence

from ..catalog import CatalogService
from ..catalog.constants import QUERY_LIMIT
from ..catalog.formatting import format_date, format_price, location_label
from ..catalog.imaging import ImageRejectedError, ImageSource, load_image_file
from ..catalog.models import ProductRecord, QueryResult
from ..catalog.staging import StagingEditor, UploadSession, parse_price_text
from ..config import load_settings
from ..logging import configure_logging, get_logger
from ..paths import expand_abs, find_project_root

LOG = get_logger("cli-main")

Prompt = Callable[[str], str]


def _service(root: Optional[str] = None) -> CatalogService:
    project_root = find_project_root(root or os.getcwd())
    return CatalogService.from_settings(load_settings(project_root), root_dir=project_root)


def _print_staged(editor: StagingEditor) -> None:
    for idx, record in enumerate(editor.records, start=1):
        print(f"{idx:>2}. {record.product_name or '<no name>'}  {format_price(record.price, record.currency)}")


def _print_products(result: QueryResult, *, as_json: bool) -> int:
    if not result.success:
        LOG.error(result.message)
        return 1
    if as_json:
        print(json.dumps([p.as_dict() for p in result.products], ensure_ascii=False))
        return 0
    if not result.products:
        print("No products found.")
        return 0
    for product in result.products:
        print(_product_line(product))
    return 0


def _product_line(product: ProductRecord) -> str:
    return (
        f"{product.name}  {format_price(product.price, product.currency)}  "
        f"{location_label(product.location)}  {format_date(product.created_at)}"
    )


def edit_interactively(editor: StagingEditor, prompt: Prompt = input) -> bool:
    """Walk the staged rows, letting the user fix names, prices and currencies.

    Returns False when the user aborts.
    """
    for idx in range(len(editor)):
        record = editor.records[idx]
        print(f"Product {idx + 1}: {record.product_name!r}  {format_price(record.price, record.currency)}")
        name = prompt(f"  name [{record.product_name}] (- to drop): ").strip()
        if name == "-":
            editor.update(idx, product_name="")
            continue
        if name:
            editor.update(idx, product_name=name)
        while True:
            price = prompt(f"  price [{'' if record.price is None else record.price}]: ").strip()
            if not price:
                break
            try:
                editor.set_price_text(idx, price)
                break
            except ValueError:
                print("  Invalid price format; try again or leave blank.")
        currency = prompt(f"  currency [{record.currency}]: ").strip()
        if currency:
            editor.update(idx, currency=currency)

    # rows emptied with "-" are dropped before validation
    for idx in reversed(range(len(editor))):
        if not editor.records[idx].product_name.strip():
            editor.remove(idx)
    while True:
        extra = prompt("Add another product? name (blank to finish): ").strip()
        if not extra:
            break
        idx = editor.append_blank()
        editor.update(idx, product_name=extra)
        try:
            editor.update(idx, price=parse_price_text(prompt("  price: ")))
        except ValueError:
            print("  Invalid price format; leaving price empty.")
        currency = prompt("  currency [USD]: ").strip()
        if currency:
            editor.update(idx, currency=currency)

    _print_staged(editor)
    return prompt("Save these products? [y/N]: ").strip().lower() in {"y", "yes"}


def run_scan(service: CatalogService, image_path: str, *, assume_yes: bool = False, prompt: Prompt = input) -> int:
    """Extract, review, upload and save the products in one photo."""
    session = UploadSession()
    try:
        session.accept(load_image_file(expand_abs(image_path), source=ImageSource.FILE, max_bytes=service.max_upload_bytes))
    except (OSError, ImageRejectedError) as e:
        LOG.error(f"Cannot use image {image_path}: {e}")
        return 2

    extracted = service.extract(session.image)
    if not extracted.success:
        session.error = extracted.message
        session.raw_content = extracted.raw_content
        LOG.error(f"Extraction failed ({extracted.code.value if extracted.code else '?'}): {extracted.message}")
        if extracted.raw_content:
            print(extracted.raw_content)
        return 1
    session.editor.replace(extracted.records)
    session.location_hint = extracted.location_hint
    _print_staged(session.editor)
    if session.location_hint:
        print(f"Location hint: {session.location_hint}")

    if not assume_yes and not edit_interactively(session.editor, prompt):
        LOG.info("Scan discarded by user.")
        return 0
    problems = session.editor.validate()
    if problems:
        for problem in problems:
            LOG.error(problem)
        return 1

    uploaded = service.upload(session.image)
    if not uploaded.success:
        LOG.error(uploaded.message)
        return 1
    session.image_url = uploaded.url

    saved = service.save(session.editor.records, session.image_url, session.location)
    if not saved.success:
        LOG.error(saved.message)
        return 1
    print(saved.message)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.info(f"CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="price-tracker",
        description="Read grocery prices from photos and keep a searchable product catalog.",
    )
    parser.add_argument("--root", help="Project root (default: detected from the current directory)")
    parser.add_argument(
        "--log-level",
        dest="app_log_level",
        help="Log level for this run (overrides LOG_LEVEL), e.g. DEBUG",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_cmd = subparsers.add_parser("init", help="Create/ensure the product DB schema exists")
    def _init(ns: argparse.Namespace) -> int:
        svc = _service(ns.root)
        try:
            LOG.info(f"Product DB ready at: {svc.db.db_path}")
            print(svc.db.db_path)
        finally:
            svc.close()
        return 0
    init_cmd.set_defaults(handler=_init)

    extract_cmd = subparsers.add_parser("extract", help="Extract products from an image without saving")
    extract_cmd.add_argument("--image", required=True, help="Path to a receipt or price tag photo")
    def _extract(ns: argparse.Namespace) -> int:
        svc = _service(ns.root)
        try:
            upload = load_image_file(expand_abs(ns.image), max_bytes=svc.max_upload_bytes)
            result = svc.extract(upload)
        except (OSError, ImageRejectedError) as e:
            LOG.error(f"Cannot use image {ns.image}: {e}")
            return 2
        finally:
            svc.close()
        if not result.success:
            LOG.error(result.message)
            if result.raw_content:
                print(result.raw_content)
            return 1
        print(json.dumps(
            {"products": [r.to_payload() for r in result.records], "locationHint": result.location_hint},
            ensure_ascii=False,
        ))
        return 0
    extract_cmd.set_defaults(handler=_extract)

    scan_cmd = subparsers.add_parser("scan", help="Extract, review, upload and save products from an image")
    scan_cmd.add_argument("--image", required=True)
    scan_cmd.add_argument("--yes", action="store_true", help="Save extracted products without reviewing them")
    def _scan(ns: argparse.Namespace) -> int:
        svc = _service(ns.root)
        try:
            return run_scan(svc, ns.image, assume_yes=ns.yes)
        finally:
            svc.close()
    scan_cmd.set_defaults(handler=_scan)

    search_cmd = subparsers.add_parser("search", help="Search saved products by name")
    search_cmd.add_argument("query")
    search_cmd.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    def _search(ns: argparse.Namespace) -> int:
        svc = _service(ns.root)
        try:
            return _print_products(svc.search(ns.query), as_json=ns.json)
        finally:
            svc.close()
    search_cmd.set_defaults(handler=_search)

    recent_cmd = subparsers.add_parser("recent", help="List the most recently saved products")
    recent_cmd.add_argument("--limit", type=int, default=QUERY_LIMIT)
    recent_cmd.add_argument("--json", action="store_true")
    def _recent(ns: argparse.Namespace) -> int:
        svc = _service(ns.root)
        try:
            return _print_products(svc.recent(ns.limit), as_json=ns.json)
        finally:
            svc.close()
    recent_cmd.set_defaults(handler=_recent)

    serve_cmd = subparsers.add_parser("serve", help="Run the JSON API and optional frontend server.")
    serve_cmd.add_argument("--host", default="127.0.0.1")
    serve_cmd.add_argument("--port", type=int, default=8000)
    serve_cmd.add_argument("--log-level", default="info")
    serve_cmd.add_argument("--static-dir", help="Override static frontend directory relative to project root")
    serve_cmd.add_argument("--api-only", action="store_true", help="Serve JSON API without static frontend")
    serve_cmd.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, use '*' for any).",
    )
    def _serve(ns: argparse.Namespace) -> int:
        from ..catalog.frontend.app import create_app
        import uvicorn

        app = create_app(
            root_dir=ns.root or os.getcwd(),
            static_dir=ns.static_dir,
            allow_origins=ns.allow_origins,
            serve_static=not ns.api_only,
        )
        uvicorn.run(app, host=ns.host, port=ns.port, log_level=ns.log_level)
        return 0
    serve_cmd.set_defaults(handler=_serve)

    args = parser.parse_args(provided)
    if args.app_log_level:
        configure_logging(args.app_log_level, force=True)
    code = args.handler(args)
    LOG.info(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
