from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from app.api.dependencies.services import get_correlation_id, get_session_registry
from app.core.security import decode_access_token
from app.schemas.auth import Identity, TokenData
from app.services.exceptions import AuthenticationError
from app.services.receipt_view_model import ReceiptViewModel
from app.services.session_services import SessionProvider, SessionRegistry

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_token_data(
	token: str = Depends(oauth2_scheme),
	correlation_id: str = Depends(get_correlation_id),
) -> TokenData:
	payload = decode_access_token(token)
	if payload is None:
		raise AuthenticationError(message="Invalid or expired access token", correlation_id=correlation_id)
	token_data = TokenData(user_id=payload.get("sub"), session_id=payload.get("sid"))
	if not token_data.user_id or not token_data.session_id:
		raise AuthenticationError(message="Access token carries no session", correlation_id=correlation_id)
	return token_data


def get_current_session(
	token_data: TokenData = Depends(get_token_data),
	registry: SessionRegistry = Depends(get_session_registry),
) -> SessionProvider:
	"""Resolve the live session behind the token; closed sessions yield 401."""
	session = registry.get(token_data.session_id)
	if session.current_identity().id != token_data.user_id:
		raise AuthenticationError(message="Token does not match its session", correlation_id=registry.correlation_id)
	return session


def get_current_identity(session: SessionProvider = Depends(get_current_session)) -> Identity:
	return session.current_identity()


def get_receipt_view_model(
	token_data: TokenData = Depends(get_token_data),
	session: SessionProvider = Depends(get_current_session),
	registry: SessionRegistry = Depends(get_session_registry),
) -> ReceiptViewModel:
	return registry.view_model(token_data.session_id)
