# main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.dependencies.services import build_receipt_view_model
from app.api.endpoints import auth, dashboard, receipt
from app.core.observability import RequestLoggingMiddleware, configure_logging
# Import all models so metadata is complete
from app.db import base  # noqa: F401
from app.services.exceptions import ServiceError, get_http_status_for_error
from app.services.session_services import SessionRegistry

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
	if getattr(app.state, "session_registry", None) is None:
		app.state.session_registry = SessionRegistry(view_model_factory=build_receipt_view_model)
	yield
	app.state.session_registry.shutdown()


app = FastAPI(title="Expense Tracker API", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
	headers = {"WWW-Authenticate": "Bearer"} if exc.http_status == 401 else None
	return JSONResponse(
		status_code=int(get_http_status_for_error(exc)),
		content={"detail": exc.user_message, "error": exc.to_dict()},
		headers=headers,
	)


app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
app.include_router(receipt.router, prefix="/receipts", tags=["receipts"])
