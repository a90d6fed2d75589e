"""Authentication service for registration, sign-in and sign-out.

Signing in opens a session in the ``SessionRegistry``; the session id travels
in the access token as the ``sid`` claim, so every later request resolves to
the same per-session receipt view model. Signing out closes it.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy.orm import Session

from app.core.config import settings
from app.services.base import BaseService
from app.services.exceptions import (
    UserNotFoundError,
    UserInactiveError,
    InvalidPasswordError,
    EmailAlreadyExistsError,
    ValidationError
)
from app.db.models.user import User
from app.core.security import get_password_hash, verify_password, create_access_token
from app.schemas.user import UserCreate
from app.schemas.auth import UserLogin, AuthResult, Identity, RegistrationResult, Token


class AuthService(BaseService):
    """Service class for handling user authentication operations.

    Requires ``user_repo`` and ``session_registry``, injected through the
    constructor.
    """

    def __init__(self, correlation_id: Optional[str] = None, **repositories):
        """Initialize authentication service.

        Args:
            correlation_id: Optional request correlation ID for logging
            **repositories: ``user_repo`` and ``session_registry``
        """
        super().__init__(correlation_id)
        if repositories:
            self._set_repositories(**repositories)

        for required in ("user_repo", "session_registry"):
            if not hasattr(self, required):
                raise ValidationError(
                    field=required,
                    message=f"{required} is required for AuthService",
                    correlation_id=correlation_id
                )

    def register_user(self, user_in: UserCreate, db: Session) -> RegistrationResult:
        """Create a new user if the email is not already registered.

        Args:
            user_in: User creation data containing email, name, and password
            db: Database session for transaction management

        Returns:
            RegistrationResult with the new user id, or the error on conflict
        """
        sanitized_email = user_in.email.lower().strip()
        email_domain = sanitized_email.split('@')[1] if '@' in sanitized_email else 'unknown'
        self.log_operation("register_user_attempt", email_domain=email_domain)

        try:
            def _register_operation() -> User:
                if self.user_repo.email_exists(sanitized_email):
                    raise EmailAlreadyExistsError(
                        email=sanitized_email,
                        correlation_id=self.correlation_id
                    )

                hashed_password = get_password_hash(user_in.password)
                new_user = self.user_repo.create_user(user_in, hashed_password)

                self.log_operation("register_user_success", user_id=new_user.id, email_domain=email_domain)
                return new_user

            user = self.run_in_transaction(db, _register_operation)
            return RegistrationResult(
                success=True,
                user_id=user.id,
                message="User registered successfully"
            )

        except EmailAlreadyExistsError as e:
            self.log_operation(
                "register_user_failed",
                error_code=e.error_code,
                reason="email_already_exists"
            )
            return RegistrationResult(
                success=False,
                error_code=e.error_code,
                message=e.message
            )
        except Exception as e:
            self.log_operation(
                "register_user_error",
                error_type=type(e).__name__,
                error_message=str(e)
            )
            raise

    def authenticate_user_and_create_token(self, login_data: UserLogin) -> AuthResult:
        """Authenticate a user by email and password and open a session.

        Args:
            login_data: Validated login credentials from UserLogin schema

        Returns:
            AuthResult with token, identity and session id on success, or
            error details on failure
        """
        sanitized_email = login_data.email.lower().strip()
        email_domain = sanitized_email.split('@')[1] if '@' in sanitized_email else 'unknown'

        self.log_operation("authenticate_user_attempt", email_domain=email_domain)

        try:
            user = self.user_repo.get_by_email(sanitized_email)
            if not user:
                raise UserNotFoundError(
                    email=sanitized_email,
                    correlation_id=self.correlation_id
                )

            if not user.is_active:
                raise UserInactiveError(
                    user_id=user.id,
                    correlation_id=self.correlation_id
                )

            if not verify_password(login_data.password, user.hashed_password):
                raise InvalidPasswordError(correlation_id=self.correlation_id)

            session_id = str(uuid.uuid4())
            identity = Identity(id=user.id, email=user.email)
            expires_in = settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
            # The session ends together with its token
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
            self.session_registry.open(session_id, identity, expires_at=expires_at)

            access_token = create_access_token({"sub": str(user.id), "sid": session_id})

            self.log_operation(
                "authenticate_user_success",
                user_id=user.id,
                session_id=session_id,
                email_domain=email_domain
            )

            return AuthResult(
                success=True,
                token=Token(
                    access_token=access_token,
                    token_type="bearer",
                    expires_in=expires_in
                ),
                identity=identity,
                session_id=session_id
            )

        except (UserNotFoundError, UserInactiveError, InvalidPasswordError) as e:
            self.log_operation(
                "authenticate_user_failed",
                error_code=e.error_code,
                reason=e.error_code.lower()
            )
            return AuthResult(
                success=False,
                error_code=e.error_code,
                message=e.message
            )
        except Exception as e:
            self.log_operation(
                "authenticate_user_error",
                error_type=type(e).__name__,
                error_message=str(e)
            )
            raise

    def sign_out(self, session_id: str) -> None:
        """Close the session; its receipt subscription is torn down with it."""
        self.session_registry.close(session_id)
        self.log_operation("sign_out", session_id=session_id)
