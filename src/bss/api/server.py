"""
Blossom HTTP API (BUD-01, BUD-02, BUD-06).

Routes:
    GET    /                  liveness text
    GET    /<sha256>[.ext]    fetch blob
    HEAD   /<sha256>[.ext]    blob existence and attributes
    PUT    /upload            upload blob (authorized)
    HEAD   /upload            upload requirements
    GET    /list/<pubkey>     list an uploader's blobs
    DELETE /<sha256>          delete blob (authorized, owner only)
    OPTIONS any               CORS preflight
"""

from __future__ import annotations

import asyncio
import contextlib
import re
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from email.utils import format_datetime
from typing import AsyncGenerator, Callable

import orjson
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException

from bss import __version__
from bss.auth.verifier import IdentityVerifier, SignatureVerifier
from bss.config import Settings, get_settings
from bss.engine.admission import AdmissionEngine, normalize_media_type
from bss.engine.lifecycle import LifecycleEngine, validate_owner
from bss.engine.retrieval import RetrievalEngine, split_blob_path, validate_address
from bss.exceptions import AuthenticationError, BSSError, PayloadTooLargeError
from bss.logging import get_logger, log_context, setup_logging
from bss.storage.base import ObjectStore
from bss.storage.file_store import FileObjectStore
from bss.types import DEFAULT_MEDIA_TYPE, ServerPolicy, generate_id, utc_now

logger = get_logger(__name__)

LIVENESS_TEXT = "Blossom Server API is running. See documentation for usage."
CACHE_CONTROL_IMMUTABLE = "public, max-age=31536000, immutable"
CORS_METHODS = ["GET", "HEAD", "PUT", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization"]

# Blob routes only claim path segments that start with a digest
_ADDRESSED_SEGMENT = re.compile(r"^[a-f0-9]{64}")


class StaticCORSMiddleware(CORSMiddleware):
    """CORS middleware that answers every preflight with the static policy.

    Preflights are never rejected for the method or headers they request;
    the browser enforces the advertised lists.
    """

    def preflight_response(self, request_headers: Headers) -> Response:
        return Response(status_code=200, headers=dict(self.preflight_headers))


@dataclass
class ServerContext:
    """Everything a request handler needs, built once per app."""

    settings: Settings
    policy: ServerPolicy
    store: ObjectStore
    verifier: IdentityVerifier
    admission: AdmissionEngine
    retrieval: RetrievalEngine
    lifecycle: LifecycleEngine

    def base_url(self, request: Request) -> str:
        if self.settings.PUBLIC_BASE_URL:
            return self.settings.PUBLIC_BASE_URL
        return str(request.base_url).rstrip("/")


def _ctx(request: Request) -> ServerContext:
    return request.app.state.ctx


def _json(payload: object, status_code: int = 200) -> Response:
    return Response(
        content=orjson.dumps(payload),
        status_code=status_code,
        media_type="application/json",
    )


def _routed_segment(name: str) -> str:
    """Return name if a blob route serves it, else answer 404 Not Found."""
    if not _ADDRESSED_SEGMENT.match(name):
        raise StarletteHTTPException(status_code=404)
    return name


async def _read_body(request: Request, ctx: ServerContext) -> bytes:
    """Read the request body, stopping as soon as it exceeds the size limit."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit():
        ctx.admission.check_size(int(declared), ctx.policy)

    chunks: list[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > ctx.policy.max_file_size:
            raise PayloadTooLargeError(
                f"File too large. Maximum size: {ctx.policy.max_file_size} bytes",
                {"size": received, "max_size": ctx.policy.max_file_size},
            )
        chunks.append(chunk)
    return b"".join(chunks)


async def _sweep_loop(lifecycle: LifecycleEngine, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        with log_context(request_id=generate_id("sweep"), operation="sweep"):
            try:
                await lifecycle.sweep()
            except Exception:
                logger.exception("Expiry sweep failed")


def create_app(
    settings: Settings | None = None,
    store: ObjectStore | None = None,
    signature_verifier: SignatureVerifier | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    """Build the Blossom FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment when None.
        store: Object store; a FileObjectStore under STORAGE_DIR when None.
        signature_verifier: Event signature check; no-op when None.
        clock: Time source shared by verifier and engines.
    """
    settings = settings or get_settings()
    if store is None:
        store = FileObjectStore(settings.STORAGE_DIR)

    ctx = ServerContext(
        settings=settings,
        policy=settings.policy(),
        store=store,
        verifier=IdentityVerifier(signature_verifier, clock=clock),
        admission=AdmissionEngine(store, clock=clock),
        retrieval=RetrievalEngine(store),
        lifecycle=LifecycleEngine(store, clock=clock),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        await ctx.store.init()
        sweeper: asyncio.Task | None = None
        if settings.SWEEP_INTERVAL_SECONDS > 0:
            sweeper = asyncio.create_task(
                _sweep_loop(ctx.lifecycle, settings.SWEEP_INTERVAL_SECONDS)
            )
        logger.info(
            "Blossom server started",
            version=__version__,
            max_file_size=ctx.policy.max_file_size,
            allow_list=len(ctx.policy.allowed_pubkeys),
        )
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sweeper
            await ctx.store.close()

    app = FastAPI(title="Blossom Server", version=__version__, lifespan=lifespan)
    app.state.ctx = ctx

    app.add_middleware(
        StaticCORSMiddleware,
        allow_origins=["*"],
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        expose_headers=["ETag", "X-Max-File-Size", "X-Allowed-MIME-Types", "X-TTL"],
        max_age=86400,
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = generate_id("req")
        started = time.perf_counter()
        with log_context(request_id=request_id):
            response = await call_next(request)
            logger.info(
                "Request complete",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(BSSError)
    async def handle_bss_error(request: Request, exc: BSSError) -> Response:
        if exc.status_code >= 500:
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error=str(exc),
                cause=repr(exc.__cause__),
            )
        else:
            logger.info(
                "Request rejected",
                method=request.method,
                path=request.url.path,
                status=exc.status_code,
                error=str(exc),
            )
        if request.method == "HEAD":
            return Response(status_code=exc.status_code)
        message = exc.message if exc.status_code < 500 else "Internal Server Error"
        return PlainTextResponse(message, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def handle_unrouted(request: Request, exc: StarletteHTTPException) -> Response:
        # Unknown paths and unsupported methods both read as absent resources
        status = 404 if exc.status_code in (404, 405) else exc.status_code
        if request.method == "HEAD":
            return Response(status_code=status)
        message = "Not Found" if status == 404 else str(exc.detail)
        return PlainTextResponse(message, status_code=status)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> Response:
        logger.error(
            "Unhandled error",
            method=request.method,
            path=request.url.path,
            error=repr(exc),
        )
        if request.method == "HEAD":
            return Response(status_code=500)
        return PlainTextResponse("Internal Server Error", status_code=500)

    # ============== Routes ==============
    # /upload and /list routes are registered before the /{name} catch-alls.

    @app.get("/")
    async def root() -> Response:
        return PlainTextResponse(LIVENESS_TEXT)

    @app.head("/upload")
    async def upload_requirements(request: Request) -> Response:
        """BUD-06: advertise upload limits."""
        policy = _ctx(request).policy
        return Response(
            headers={
                "X-Max-File-Size": str(policy.max_file_size),
                "X-Allowed-MIME-Types": ",".join(policy.allowed_mime_types),
                "X-TTL": str(int(policy.blob_ttl.total_seconds())),
            }
        )

    @app.put("/upload")
    async def upload(request: Request) -> Response:
        """BUD-02: upload a blob."""
        ctx = _ctx(request)
        with log_context(operation="upload"):
            identity = ctx.verifier.verify(
                request.headers.get("authorization"), ctx.policy, required=True
            )
            data = await _read_body(request, ctx)
            media_type = (
                normalize_media_type(request.headers.get("content-type"))
                or DEFAULT_MEDIA_TYPE
            )
            result = await ctx.admission.admit(
                data,
                media_type,
                identity.pubkey,
                ctx.policy,
                ctx.base_url(request),
            )
        return _json(result.descriptor.to_dict(), status_code=201 if result.created else 200)

    @app.get("/list/{pubkey}")
    async def list_blobs(pubkey: str, request: Request) -> Response:
        """BUD-02: list blobs uploaded by pubkey."""
        ctx = _ctx(request)
        with log_context(operation="list"):
            validate_owner(pubkey)
            # Attribution is optional; a bad credential is logged, not rejected
            try:
                identity = ctx.verifier.verify(
                    request.headers.get("authorization"), ctx.policy, required=False
                )
            except AuthenticationError as e:
                logger.info("Ignoring invalid listing credential", error=e.message)
            else:
                if not identity.is_anonymous:
                    logger.debug("Listing requested", requester=identity.pubkey[:12])
            descriptors = await ctx.lifecycle.list_by_owner(pubkey, ctx.base_url(request))
        return _json([d.to_dict() for d in descriptors])

    @app.get("/{name}")
    async def get_blob(name: str, request: Request) -> Response:
        """BUD-01: fetch a blob by hash, with or without extension."""
        sha256 = split_blob_path(_routed_segment(name))
        with log_context(operation="get", blob=sha256):
            content = await _ctx(request).retrieval.fetch(sha256)
        return Response(
            content=content.data,
            headers={
                "Content-Type": content.media_type,
                "ETag": f'"{sha256}"',
                "Cache-Control": CACHE_CONTROL_IMMUTABLE,
            },
        )

    @app.head("/{name}")
    async def head_blob(name: str, request: Request) -> Response:
        """BUD-01: check a blob exists."""
        sha256 = split_blob_path(_routed_segment(name))
        with log_context(operation="head", blob=sha256):
            info = await _ctx(request).retrieval.exists(sha256)
        return Response(
            headers={
                "Content-Type": info.media_type,
                "Content-Length": str(info.size),
                "ETag": f'"{sha256}"',
                "Last-Modified": format_datetime(info.uploaded_at, usegmt=True),
            }
        )

    @app.delete("/{sha256}")
    async def delete_blob(sha256: str, request: Request) -> Response:
        """BUD-02: delete a blob (uploader only)."""
        ctx = _ctx(request)
        with log_context(operation="delete", blob=sha256):
            validate_address(_routed_segment(sha256))
            identity = ctx.verifier.verify(
                request.headers.get("authorization"), ctx.policy, required=True
            )
            await ctx.lifecycle.delete(sha256, identity.pubkey)
        return Response(status_code=204)

    @app.options("/{path:path}")
    async def preflight(path: str) -> Response:
        return Response(status_code=200)

    return app


def main(host: str | None = None, port: int | None = None, reload: bool = False) -> None:
    """Run the server with uvicorn; host and port default to settings."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    uvicorn.run(
        "bss.api.server:create_app",
        factory=True,
        host=host or settings.HOST,
        port=port or settings.PORT,
        reload=reload,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
