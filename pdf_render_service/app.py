"""
PDF Render Service - FastAPI application.

Provides a health check and an endpoint that converts HTML to PDF
using a shared Playwright/Chromium browser.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field, StrictBool, StrictStr
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import RenderSettings, get_settings, validate_config_on_startup
from .errors import InvalidInputError, PayloadTooLargeError, RenderError
from .html_helpers import normalize_page_format, PAGE_FORMATS
from .renderer import RenderOptions
from .service import PdfRenderService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "invalid_input",
    404: "not_found",
    405: "method_not_allowed",
    413: "payload_too_large",
}


# ============================================================================
# Request/Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    ok: bool = True
    ts: str
    active_renders: int
    queued_renders: int
    max_concurrent: int
    browser: str


class RenderPDFRequest(BaseModel):
    """HTML to PDF request."""
    html: StrictStr = Field(..., description="HTML document or fragment to render")
    pageSize: Optional[str] = Field(
        None,
        description=f"Fallback page size when the document has no @page size: {', '.join(PAGE_FORMATS)}"
    )
    landscape: StrictBool = Field(False, description="Landscape orientation")
    printBackground: StrictBool = Field(True, description="Print background colors/images")


# ============================================================================
# Body Size Limit
# ============================================================================

class BodySizeLimitMiddleware:
    """
    Reject request bodies larger than max_bytes with 413.

    Declared Content-Length is checked before the body is read; bodies
    without one are counted as they stream in.
    """

    def __init__(self, app, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_bytes:
            logger.warning(f"Rejecting request body of {content_length} bytes (limit {self.max_bytes})")
            error = PayloadTooLargeError(f"Request body exceeds {self.max_bytes} bytes")
            response = JSONResponse(error.to_dict(), status_code=error.status_code)
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive():
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    # HTTPException passes through FastAPI's body parsing unchanged
                    raise HTTPException(
                        status_code=413,
                        detail=f"Request body exceeds {self.max_bytes} bytes",
                    )
            return message

        await self.app(scope, limited_receive, send)


# ============================================================================
# Application Factory
# ============================================================================

def create_app(
    settings: Optional[RenderSettings] = None,
    service: Optional[PdfRenderService] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration; defaults to the cached environment settings
        service: Render service; defaults to one built from settings

    Returns:
        Configured FastAPI app whose lifespan owns the browser
    """
    settings = settings or get_settings()
    service = service or PdfRenderService.from_settings(settings)
    logging.getLogger().setLevel(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        validate_config_on_startup(settings)
        logger.info(f"PDF service starting on port {settings.port}")
        if settings.pdf_eager_launch:
            try:
                await service.browser_manager.acquire_browser()
            except RenderError as e:
                # Keep serving; the first render retries the launch
                logger.error(f"Eager browser launch failed: {e.to_dict()['detail']}")
        yield
        logger.info("PDF service shutting down")
        await service.shutdown()

    app = FastAPI(
        title="PDF Render Service",
        version=__version__,
        description="Renders HTML documents to PDF using Playwright/Chromium",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.render_service = service

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.pdf_max_body_bytes)
    # Added last so it wraps everything, including 413 responses
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_origin_regex=settings.cors_origin_regex,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    _register_exception_handlers(app)
    _register_routes(app, settings, service)
    return app


def _register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(RenderError)
    async def render_error_handler(request: Request, exc: RenderError):
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
        detail = "; ".join(messages) or "Invalid request body"
        logger.info(f"Rejected invalid request: {detail}")
        return JSONResponse(
            {"error": "invalid_input", "detail": f'Send {{ "html": "<html...>" }} ({detail})'},
            status_code=400,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = HTTP_ERROR_CODES.get(exc.status_code, "http_error")
        return JSONResponse(
            {"error": code, "detail": str(exc.detail)},
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {type(exc).__name__}")
        return JSONResponse({"error": "internal_error"}, status_code=500)


def _register_routes(app: FastAPI, settings: RenderSettings, service: PdfRenderService) -> None:

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return "PDF render service OK"

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """
        Liveness probe.

        Reports gate occupancy and browser state without touching the browser.
        """
        return HealthResponse(**service.status())

    @app.post("/api/gerar-pdf")
    async def gerar_pdf(request: RenderPDFRequest) -> Response:
        """
        Convert an HTML document to PDF.

        Returns:
            Response with the PDF bytes as an attachment

        Raises:
            InvalidInputError: 400 for empty HTML or unknown page size
            RenderError: 500 for render failures
        """
        if not request.html.strip():
            raise InvalidInputError('Send { "html": "<html...>" } with non-empty HTML')

        page_format = settings.pdf_default_format
        if request.pageSize:
            page_format = normalize_page_format(request.pageSize)
            if page_format is None:
                raise InvalidInputError(
                    f"Unknown pageSize {request.pageSize!r}; expected one of: {', '.join(PAGE_FORMATS)}"
                )

        html_bytes = len(request.html.encode("utf-8"))
        if html_bytes > settings.pdf_max_body_bytes:
            raise PayloadTooLargeError(f"HTML exceeds {settings.pdf_max_body_bytes} bytes")

        options = RenderOptions(
            page_format=page_format,
            landscape=request.landscape,
            print_background=request.printBackground,
        )
        result = await service.render(request.html, options)

        return Response(
            content=result.pdf,
            media_type="application/pdf",
            headers={
                "Content-Disposition": f'attachment; filename="{settings.pdf_filename}"',
                "Content-Length": str(result.size),
                "Cache-Control": "no-store",
            },
        )


app = create_app()
