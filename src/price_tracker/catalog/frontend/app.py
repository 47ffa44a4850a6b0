from __future__ import annotations

import contextlib
import os
from typing import Any, AsyncIterator, Dict, List, Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

from ...config import Settings, load_settings
from ...logging import get_logger
from ...paths import find_project_root
from ..constants import MESSAGES, QUERY_LIMIT, ErrorCode
from ..imaging import ImageRejectedError, ImageSource, ImageUpload, acquire_image
from ..models import Location, OperationResult
from ..service import CatalogService
from ..storage import LocalImageStore


LOG = get_logger("catalog-frontend")

DEFAULT_STATIC_SUBDIR = os.path.join("frontend", "dist")

_STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.AI_ERROR: 502,
    ErrorCode.STORAGE_ERROR: 500,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.PROCESSING_ERROR: 500,
}


def _parse_int(value: Optional[str], *, default: int, minimum: int, maximum: int) -> int:
    try:
        parsed = int(value) if value is not None else default
    except (TypeError, ValueError):
        parsed = default
    if parsed < minimum:
        return minimum
    if parsed > maximum:
        return maximum
    return parsed


def _error_response(result: OperationResult, **extra: Any) -> JSONResponse:
    code = result.code or ErrorCode.PROCESSING_ERROR
    body: Dict[str, Any] = {"error": result.message, "code": code.value}
    body.update({k: v for k, v in extra.items() if v is not None})
    return JSONResponse(body, status_code=_STATUS_BY_CODE.get(code, 500))


def _invalid(message: str) -> JSONResponse:
    return JSONResponse({"error": message, "code": ErrorCode.INVALID_INPUT.value}, status_code=400)


def _image_source(value: Any) -> ImageSource:
    try:
        return ImageSource(str(value or ImageSource.FILE.value).lower())
    except ValueError:
        return ImageSource.FILE


def create_app(
    root_dir: Optional[str] = None,
    *,
    service: Optional[CatalogService] = None,
    settings: Optional[Settings] = None,
    static_dir: Optional[str] = None,
    allow_origins: Optional[List[str]] = None,
    serve_static: bool = True,
) -> Starlette:
    """Create a Starlette app exposing the catalog API and optional frontend."""

    project_root = find_project_root(root_dir)
    owns_service = service is None
    if service is None:
        service = CatalogService.from_settings(settings or load_settings(project_root), root_dir=project_root)

    resolved_static_dir: Optional[str] = None
    if serve_static:
        candidate = os.path.abspath(os.path.join(project_root, static_dir or DEFAULT_STATIC_SUBDIR))
        if os.path.isdir(candidate):
            resolved_static_dir = candidate
            LOG.info("Serving static frontend from %s", resolved_static_dir)
        else:
            LOG.warning("Frontend build not found at %s; API will run without static assets.", candidate)
    else:
        LOG.info("Static frontend serving disabled (API only mode).")

    async def read_image(request: Request) -> ImageUpload:
        async with request.form() as form:
            item = form.get("image")
            if not isinstance(item, UploadFile):
                raise ImageRejectedError(MESSAGES["no_image"])
            data = await item.read()
            return acquire_image(
                data,
                item.content_type,
                source=_image_source(form.get("source")),
                filename=item.filename,
                max_bytes=service.max_upload_bytes,
            )

    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "db_path": service.db.db_path})

    async def image_to_text(request: Request) -> JSONResponse:
        try:
            upload = await read_image(request)
        except ImageRejectedError as exc:
            return _invalid(str(exc))
        result = await run_in_threadpool(service.extract, upload)
        if not result.success:
            raw = result.raw_content if result.code == ErrorCode.PROCESSING_ERROR else None
            return _error_response(result, rawContent=raw)
        payloads = [r.to_payload() for r in result.records]
        headers = {"X-Location-Hint": result.location_hint} if result.location_hint else None
        return JSONResponse(payloads[0] if len(payloads) == 1 else payloads, headers=headers)

    async def upload_image(request: Request) -> JSONResponse:
        try:
            upload = await read_image(request)
        except ImageRejectedError as exc:
            return _invalid(str(exc))
        result = await run_in_threadpool(service.upload, upload)
        if not result.success:
            return _error_response(result)
        return JSONResponse({"path": result.path, "url": result.url})

    async def save_products(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            return _invalid("Request body must be JSON")
        if not isinstance(body, dict):
            return _invalid("Request body must be a JSON object")
        products = body.get("products")
        if isinstance(products, dict):
            products = [products]
        if products is not None and not isinstance(products, list):
            return _invalid(MESSAGES["no_products"])
        image_url = body.get("imageUrl") or body.get("image_url")
        location = Location.from_dict(body.get("location")) or Location.from_hint(body.get("locationHint"))
        result = await run_in_threadpool(service.save, products, image_url, location)
        if not result.success:
            return _error_response(result)
        return JSONResponse(result.as_dict() | {"count": result.count})

    async def search(request: Request) -> JSONResponse:
        qp = request.query_params
        result = await run_in_threadpool(service.search, qp.get("q") or qp.get("query"))
        if not result.success:
            return _error_response(result)
        return JSONResponse({"items": [p.as_dict() for p in result.products]})

    async def recent(request: Request) -> JSONResponse:
        limit = _parse_int(request.query_params.get("limit"), default=QUERY_LIMIT, minimum=1, maximum=QUERY_LIMIT)
        result = await run_in_threadpool(service.recent, limit)
        if not result.success:
            return _error_response(result)
        return JSONResponse({"items": [p.as_dict() for p in result.products]})

    routes = [
        Route("/api/health", health, methods=["GET"]),
        Route("/api/image-to-text", image_to_text, methods=["POST"]),
        Route("/api/upload", upload_image, methods=["POST"]),
        Route("/api/products", save_products, methods=["POST"]),
        Route("/api/products/search", search, methods=["GET"]),
        Route("/api/products/recent", recent, methods=["GET"]),
    ]
    if isinstance(service.store, LocalImageStore):
        routes.append(Mount("/media", StaticFiles(directory=service.store.root_dir), name="media"))

    @contextlib.asynccontextmanager
    async def lifespan(_: Starlette) -> AsyncIterator[None]:
        yield
        if owns_service:
            service.close()

    app = Starlette(debug=False, routes=routes, lifespan=lifespan)

    origins = allow_origins or ["http://localhost:3000", "http://127.0.0.1:3000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in origins else origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Location-Hint"],
    )

    if resolved_static_dir:
        app.mount("/", StaticFiles(directory=resolved_static_dir, html=True), name="frontend")
    elif serve_static:
        async def missing_frontend(_: Request) -> JSONResponse:
            return JSONResponse(
                {"detail": f"Frontend build missing at {DEFAULT_STATIC_SUBDIR}; the JSON API is under /api."},
                status_code=503,
            )

        app.add_route("/", missing_frontend, methods=["GET"])
    else:
        async def api_only(_: Request) -> JSONResponse:
            return JSONResponse({"detail": "Price tracker API is running. Static frontend disabled (serve_static=False)."})

        app.add_route("/", api_only, methods=["GET"])

    return app


__all__ = ["create_app"]
