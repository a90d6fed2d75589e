from fastapi import Depends, HTTPException, Response, status
from app.api.router import create_router
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.api.dependencies.auth import get_current_identity, get_token_data
from app.api.dependencies.database import get_db
from app.api.dependencies.services import get_auth_service, get_user_repository
from app.repositories.user import UserRepository
from app.schemas.auth import Identity, Token, TokenData, UserLogin
from app.schemas.user import UserCreate, UserRead
from app.services.auth_services import AuthService

router = create_router(name="auth")

@router.post("/register", response_model=UserRead)
def register(
	user_in: UserCreate,
	db: Session = Depends(get_db),
	auth_service: AuthService = Depends(get_auth_service),
	user_repo: UserRepository = Depends(get_user_repository),
) -> UserRead:
	"""Register a new user if the email is not already taken."""
	registration_result = auth_service.register_user(user_in, db)
	if not registration_result.success:
		raise HTTPException(
			status_code=status.HTTP_409_CONFLICT,
			detail=registration_result.message or "Registration failed"
		)
	return user_repo.get_by_id(registration_result.user_id)

@router.post("/login", response_model=Token)
def login(
	form_data: OAuth2PasswordRequestForm = Depends(),
	auth_service: AuthService = Depends(get_auth_service),
) -> Token:
	"""Authenticate user, open a session and return its access token."""
	try:
		login_data = UserLogin(email=form_data.username, password=form_data.password)
	except ValidationError:
		raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Invalid email or password format")
	auth_result = auth_service.authenticate_user_and_create_token(login_data)

	if not auth_result.success:
		raise HTTPException(
			status_code=status.HTTP_401_UNAUTHORIZED,
			detail=auth_result.message or "Invalid credentials"
		)

	return auth_result.token

@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
	token_data: TokenData = Depends(get_token_data),
	auth_service: AuthService = Depends(get_auth_service),
) -> Response:
	auth_service.sign_out(token_data.session_id)
	return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/me", response_model=Identity)
def me(identity: Identity = Depends(get_current_identity)) -> Identity:
	return identity
