import time
import traceback
import uuid
from contextlib import asynccontextmanager
from os import environ
from pathlib import Path

import logfire
import socketio
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from fastapi.staticfiles import StaticFiles
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from camrelay.api.errors import app_error_handler
from camrelay.api.signaling import SignalingNamespace
from camrelay.app_config import get_app_environ_config
from camrelay.domain.relay import RelayCoordinator
from camrelay.services.media import media_service
from camrelay.shared.api.utils import api_failure, init_logger, load_routes
from camrelay.shared.config import config
from camrelay.utils.app_errors import AppError, AppErrorCode


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000

            logger.info(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000

            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=AppErrorCode.E_INTERNAL_ERROR,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(
                status_code=500,
                content=failure.model_dump(),
            )


async def app_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()

    logger.warning(
        "Validation error: path={} method={} errors={}",
        request.url.path,
        request.method,
        errors,
    )

    failure = api_failure(AppErrorCode.E_INVALID_REQUEST, errmesg=str(errors))

    return ORJSONResponse(status_code=422, content=failure.model_dump())


signaling = SignalingNamespace("/")


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger()

    logger.info("Application startup...")

    cfg = get_app_environ_config()

    coordinator = RelayCoordinator(media_service, cfg)
    try:
        await coordinator.start()
    except AppError as e:
        logger.error(f"Media engine initialization failed: {e.errcode} {e.erresid} msg={e.errmesg}")
        await media_service.shutdown()
        raise

    server.state.coordinator = coordinator
    signaling.bind(coordinator)

    if cfg.LOGFIRE_ENABLE:
        logger.info("Logfire initializing")

        logfire.configure(
            token=cfg.LOGFIRE_TOKEN,
            service_name="camrelay",
            service_version=environ.get("BUILD_COMMIT") or "dev",
        )

        logger.info("Logfire instrument fastapi")
        logfire.instrument_fastapi(server, capture_headers=True)

        logger.info("Logfire instrument pydantic")
        logfire.instrument_pydantic()

    yield

    logger.info("Application shutdown...")

    signaling.bind(None)
    await coordinator.shutdown()
    server.state.coordinator = None


app = FastAPI(
    version="1.0",
    title="Camera Relay",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

app.add_middleware(HTTPLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,  # type: ignore
    allow_origins=config.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, app_validation_exception_handler)  # type: ignore
app.add_exception_handler(AppError, app_error_handler)  # type: ignore

load_routes(app, "/api/v1")

if client_dir := get_app_environ_config().CLIENT_DIR:
    if Path(client_dir).is_dir():
        app.mount("/", StaticFiles(directory=client_dir, html=True), name="client")
    else:
        logger.warning("CLIENT_DIR {} is not a directory, viewer client not served", client_dir)

cors_origins = config.get_cors_origins()
sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*" if "*" in cors_origins else cors_origins,
)
sio.register_namespace(signaling)

asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)


def build_granian_kwargs():
    cfg = get_app_environ_config()
    kwargs = {
        "interface": "asgi",
        "address": cfg.API_HOST,
        "port": cfg.API_PORT,
        # Relay state is process-local
        "workers": 1,
        "reload": cfg.DEBUG,
    }

    return kwargs


if __name__ == "__main__":
    granian_kwargs = build_granian_kwargs()
    Granian("camrelay.main:asgi_app", **granian_kwargs).serve()
