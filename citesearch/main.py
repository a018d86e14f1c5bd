from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from citesearch.api.routes import meta, search
from citesearch.config import Settings, get_settings
from citesearch.errors import CiteSearchError
from citesearch.services import logger as log_service


async def handle_citesearch_error(request: Request, exc: CiteSearchError) -> JSONResponse:
    log_service.log_event(
        event_type="request_failed",
        message=exc.message,
        error_type=exc.__class__.__name__,
        status_code=exc.status_code,
        details=exc.details,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if any(err.get("type") == "json_invalid" for err in errors):
        message = "Invalid JSON in request body"
    else:
        message = "Invalid request: query is required and cannot be empty"
    return JSONResponse(
        status_code=400,
        content={"error": message, "details": jsonable_encoder(errors)},
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    log_service.logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error while processing search request",
            "details": str(exc) or exc.__class__.__name__,
        },
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        log_service.configure_logging(settings)
        log_service.log_event(
            event_type="startup",
            message="citesearch started",
            **settings.public_view(),
        )
        yield
        # Shutdown

    app = FastAPI(
        title="citesearch",
        description="Conversational web search with streamed, cited answers",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CiteSearchError, handle_citesearch_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    # Routes
    app.include_router(search.router)
    app.include_router(meta.router)

    app.dependency_overrides[get_settings] = lambda: settings
    return app


app = create_app()
