from __future__ import annotations

import logging
import time
import uuid
from random import random
from typing import Callable, Optional, Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.core.config import settings

request_logger = logging.getLogger("app.requests")
outbound_logger = logging.getLogger("app.outbound")


def configure_logging(level: Optional[str] = None) -> None:
	"""Apply the configured log level and a single stream handler."""
	logging.basicConfig(
		level=(level or settings.LOG_LEVEL).upper(),
		format="%(asctime)s %(levelname)s %(name)s %(message)s",
	)


def generate_correlation_id(existing: Optional[str]) -> str:
	if existing and existing.strip():
		return existing.strip()
	return str(uuid.uuid4())


class RequestLoggingMiddleware(BaseHTTPMiddleware):
	"""Middleware to log inbound HTTP requests with correlation IDs."""

	async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
		if not settings.ENABLE_REQUEST_LOGGING:
			return await call_next(request)

		sampled_out = (settings.LOG_SAMPLE_RATE < 1.0) and (random() > float(settings.LOG_SAMPLE_RATE))

		correlation_id = generate_correlation_id(request.headers.get("X-Correlation-ID"))
		setattr(request.state, "correlation_id", correlation_id)

		start_ns = time.monotonic_ns()
		status_code: int = 500
		response: Optional[Response] = None

		try:
			response = await call_next(request)
			status_code = response.status_code
		finally:
			duration_ms = int((time.monotonic_ns() - start_ns) / 1_000_000)

			if response is not None:
				response.headers["X-Correlation-ID"] = correlation_id

			if not sampled_out:
				request_logger.info(
					"%s %s -> %s (%dms)",
					request.method,
					request.url.path,
					status_code,
					duration_ms,
					extra=_build_inbound_payload(request, correlation_id, status_code, duration_ms),
				)

		return response


def _build_inbound_payload(request: Request, correlation_id: str, status_code: int, duration_ms: int) -> dict:
	# Route template may be unavailable for 404 or early errors
	path_template = None
	route = request.scope.get("route")
	if route is not None:
		path_template = getattr(route, "path", None)

	xff = request.headers.get("x-forwarded-for")
	client_ip = (xff.split(",")[0].strip() if xff else (request.client.host if request.client else None))

	auth_header = request.headers.get("authorization") or ""
	auth_type = "bearer" if auth_header.lower().startswith("bearer ") else "none"

	return {
		"correlation_id": correlation_id,
		"connection_type": "http",
		"method": request.method,
		"path_template": path_template or request.url.path,
		"status_code": status_code,
		"duration_ms": duration_ms,
		"client_ip": client_ip,
		"user_agent": (request.headers.get("user-agent") or "")[:256],
		"auth_type": auth_type,
	}


def log_outbound_call(provider: str, target: str, operation: str, correlation_id: Optional[str], call: Callable[[], Any]) -> Any:
	"""Execute outbound call and log its duration.

	Args:
		provider: External provider name (e.g., minio)
		target: Target entity (e.g., object key)
		operation: Operation name
		correlation_id: Correlation ID for linkage
		call: Callable that performs the operation

	Returns:
		Result of `call()`
	"""
	if not settings.ENABLE_OUTBOUND_LOGGING:
		return call()

	start_ns = time.monotonic_ns()
	error_code: Optional[str] = None
	try:
		return call()
	except Exception as e:
		error_code = getattr(e, "code", None) or type(e).__name__
		raise
	finally:
		duration_ms = int((time.monotonic_ns() - start_ns) / 1_000_000)
		outbound_logger.info(
			"%s %s %s (%dms)",
			provider,
			operation,
			target,
			duration_ms,
			extra={
				"correlation_id": correlation_id or str(uuid.uuid4()),
				"connection_type": "sdk",
				"provider": provider,
				"target": target,
				"operation": operation,
				"duration_ms": duration_ms,
				"error_code": error_code,
			},
		)
