"""Service dependency providers for FastAPI dependency injection."""

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker
from typing import Optional

from app.api.dependencies.database import get_db
from app.api.dependencies.storage import get_minio_client
from app.db.live_query import ReceiptChangeFeed
from app.db.session import SessionLocal, receipt_change_feed
from app.services.auth_services import AuthService
from app.services.image_services import ImageStore
from app.services.receipt_view_model import ReceiptViewModel
from app.services.session_services import SessionProvider, SessionRegistry
from app.repositories.user import UserRepository
from app.repositories.receipt import ReceiptRepository


def get_correlation_id(request: Request) -> Optional[str]:
	"""Extract or generate correlation ID for logging and tracing."""
	from app.core.observability import generate_correlation_id
	cid = getattr(request.state, "correlation_id", None)
	if not cid:
		cid = generate_correlation_id(request.headers.get("X-Correlation-ID"))
		setattr(request.state, "correlation_id", cid)
	return cid


def get_session_registry(request: Request) -> SessionRegistry:
	"""Provide the process-wide session registry created by the app lifespan."""
	return request.app.state.session_registry


def build_receipt_view_model(
    session: SessionProvider,
    session_factory: sessionmaker = SessionLocal,
    image_store: Optional[ImageStore] = None,
    change_feed: ReceiptChangeFeed = receipt_change_feed,
) -> ReceiptViewModel:
    """Build the view model of a freshly opened session.

    The view model gets its own database session, which it closes on dispose.
    ``session_factory`` must be bound to ``change_feed`` for live updates.
    """
    store = image_store or ImageStore(get_minio_client(), correlation_id=session.correlation_id)
    receipt_repo = ReceiptRepository(
        db=session_factory(),
        image_store=store,
        change_feed=change_feed,
        correlation_id=session.correlation_id,
    )
    return ReceiptViewModel(
        session=session,
        receipt_repo=receipt_repo,
        image_store=store,
        correlation_id=session.correlation_id,
    )


# Repository Dependencies
def get_user_repository(
    db: Session = Depends(get_db),
    correlation_id: Optional[str] = Depends(get_correlation_id)
) -> UserRepository:
    """Provide UserRepository instance."""
    return UserRepository(db=db, correlation_id=correlation_id)


# Service Dependencies
def get_auth_service(
    user_repo: UserRepository = Depends(get_user_repository),
    session_registry: SessionRegistry = Depends(get_session_registry),
    correlation_id: Optional[str] = Depends(get_correlation_id)
) -> AuthService:
    """Provide AuthService instance with user repository and session registry.

    Args:
        user_repo: User repository from dependency injection
        session_registry: Registry the signed-in session is opened in
        correlation_id: Optional correlation ID from request headers

    Returns:
        Configured AuthService instance
    """
    return AuthService(
        correlation_id=correlation_id,
        user_repo=user_repo,
        session_registry=session_registry
    )
