from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging
import time
from typing import Optional

from opentelemetry.trace import get_current_span
from sqlalchemy.exc import SQLAlchemyError

from trademart.core.config import settings
from trademart.core.capabilities import SchemaCapabilities
from trademart.core.db import dispose_engine, get_engine, init_engine_and_session, translate_db_error
from trademart.core.security import AuthConfig
from trademart.integrations.auth_provider import AuthProviderClient
from trademart.api.routes.auth import router as auth_router
from trademart.api.routes.health import router as health_router
from trademart.api.routes.notifications import router as notifications_router
from trademart.api.routes.vendors import router as vendors_router
from trademart.utils.envelopes import api_success, api_error, error_response
from trademart.utils.exceptions import AppException, PayloadTooLargeException


app = FastAPI(title=settings.APP_NAME)

# Telemetry / Azure Monitor (optional)
_logger = logging.getLogger("trademart.api")
try:
	if settings.ENABLE_APP_INSIGHTS and settings.AZURE_MONITOR_CONN_STR:
		from azure.monitor.opentelemetry import configure_azure_monitor
		from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
		from opentelemetry.instrumentation.logging import LoggingInstrumentor

		configure_azure_monitor(
			connection_string=settings.AZURE_MONITOR_CONN_STR,
			sampling_ratio=settings.SAMPLING_RATIO,
		)
		# Include trace/span ids in stdlib logging records
		LoggingInstrumentor().instrument(set_logging_format=True)
		FastAPIInstrumentor.instrument_app(app)
		_logger.info("Azure Monitor telemetry is enabled")
except Exception as telemetry_exc:
	# Do not block app startup if telemetry fails
	_logger.warning("Failed to initialize Azure Monitor telemetry: %s", telemetry_exc)

# Cookie sessions need explicit origins; "*" cannot be combined with credentials
app.add_middleware(
	CORSMiddleware,
	allow_origins=settings.cors_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

# Normalize API prefix (must not end with '/')
_api_prefix = settings.API_PREFIX.rstrip("/")

app.include_router(health_router, prefix=_api_prefix)
app.include_router(auth_router, prefix=_api_prefix)
app.include_router(vendors_router, prefix=_api_prefix)
app.include_router(notifications_router, prefix=_api_prefix)


def _trace_id() -> Optional[str]:
	_current_span = get_current_span()
	trace_id_int = _current_span.get_span_context().trace_id if _current_span else 0
	return f"{trace_id_int:032x}" if trace_id_int else None


@app.middleware("http")
async def body_size_middleware(request: Request, call_next):
	content_length = request.headers.get("content-length")
	if content_length is not None:
		try:
			too_large = int(content_length) > settings.MAX_BODY_BYTES
		except ValueError:
			too_large = False
		if too_large:
			return error_response(
				PayloadTooLargeException(details={"max_bytes": settings.MAX_BODY_BYTES})
			)
	return await call_next(request)


# Structured request logging (includes trace correlation where available)
@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
	start_time = time.perf_counter()
	client_ip: Optional[str] = request.headers.get("x-forwarded-for") or (request.client.host if request.client else None)
	user_agent: Optional[str] = request.headers.get("user-agent")
	status_code: Optional[int] = None
	try:
		response = await call_next(request)
		status_code = response.status_code
		return response
	except Exception:
		# Log here as well; handler below will also run
		_logger.exception(
			"Unhandled exception during request",
			extra={
				"http.method": request.method,
				"http.route": request.url.path,
				"net.peer.ip": client_ip,
				"http.user_agent": user_agent,
				"trace_id": _trace_id(),
			},
		)
		raise
	finally:
		elapsed_ms = (time.perf_counter() - start_time) * 1000.0
		_logger.info(
			"HTTP request",
			extra={
				"http.method": request.method,
				"http.route": request.url.path,
				"http.status_code": status_code,
				"http.duration_ms": round(elapsed_ms, 2),
				"net.peer.ip": client_ip,
				"http.user_agent": user_agent,
				"trace_id": _trace_id(),
			},
		)


@app.on_event("startup")
async def on_startup() -> None:
	init_engine_and_session()
	app.state.auth_config = AuthConfig.from_settings(settings, _logger)
	app.state.auth_provider = AuthProviderClient(app.state.auth_config)
	try:
		app.state.capabilities = await SchemaCapabilities.detect(get_engine())
	except SQLAlchemyError as exc:
		_logger.warning("Schema capability detection failed; assuming full schema: %s", exc)
		app.state.capabilities = SchemaCapabilities()


@app.on_event("shutdown")
async def on_shutdown() -> None:
	await dispose_engine()


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
	if exc.status_code >= 500:
		_logger.warning(
			"Request failed",
			extra={"http.route": request.url.path, "error.code": exc.code, "trace_id": _trace_id()},
		)
	return error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
	return JSONResponse(
		status_code=400,
		content=jsonable_encoder(api_error("VALIDATION_ERROR", "Invalid request", details=exc.errors())),
	)


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
	_logger.error(
		"Database error",
		extra={
			"http.method": request.method,
			"http.route": request.url.path,
			"error": str(exc),
			"trace_id": _trace_id(),
		},
	)
	return error_response(translate_db_error(exc))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
	_logger.exception(
		"Unhandled exception",
		extra={
			"http.method": request.method,
			"http.route": request.url.path,
			"trace_id": _trace_id(),
		},
	)
	return JSONResponse(status_code=500, content=api_error(code="INTERNAL_SERVER_ERROR", message="An unexpected error occurred"))


@app.get("/")
async def root():
	return api_success({"service": settings.APP_NAME, "status": "ok"})
