import hashlib
import logging
import time
from typing import Dict, Optional, Tuple

from supabase import AsyncClient, AuthApiError, AuthError, AuthRetryableError

from docadmin.core.errors import AppError, AuthUnavailable, ConflictError, Unauthenticated, ValidationError
from docadmin.modules.auth.schemas import LoginRequest, TokenResponse
from docadmin.modules.rbac.models import User
from docadmin.modules.rbac.store import GrantStore

logger = logging.getLogger(__name__)

# token digest -> (auth user id, expiry); saves a Supabase Auth round trip per request.
# Only the identity is cached; permissions are always resolved fresh.
_AUTH_IDENTITY_CACHE: Dict[str, Tuple[str, float]] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500

_EMAIL_TAKEN_CODES = {"email_exists", "user_already_exists"}


def clear_identity_cache() -> None:
    _AUTH_IDENTITY_CACHE.clear()


def is_auth_outage(error: AuthError) -> bool:
    """Transport failures and 5xx answers, as opposed to a verdict on the credentials"""
    if isinstance(error, AuthRetryableError):
        return True
    status = getattr(error, "status", None)
    return isinstance(error, AuthApiError) and isinstance(status, int) and status >= 500


class AuthService:
    def __init__(self, supabase: AsyncClient, store: GrantStore):
        self.supabase = supabase
        self.store = store

    async def login(self, login_data: LoginRequest) -> TokenResponse:
        """Authenticate against Supabase Auth; the account must also exist in the users table"""
        try:
            auth_response = await self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password
            })
        except AuthError as e:
            if is_auth_outage(e):
                logger.error(f"Supabase Auth unavailable during login: {e}")
                raise AuthUnavailable() from e
            logger.info(f"Login failed for {login_data.email}: {e}")
            raise Unauthenticated("Invalid email or password") from e

        if not auth_response.user or not auth_response.session:
            raise Unauthenticated("Invalid email or password")

        user = await self.store.get_user(auth_response.user.id)
        if user is None:
            logger.warning(f"Login for {login_data.email} has no matching users row")
            raise Unauthenticated("Invalid email or password")

        return TokenResponse(
            access_token=auth_response.session.access_token,
            token_type="bearer",
            user_id=user.id,
            email=user.email
        )

    async def logout(self, token: str) -> None:
        """Drop the cached identity and end the Supabase session"""
        _AUTH_IDENTITY_CACHE.pop(hashlib.sha256(token.encode()).hexdigest(), None)
        try:
            await self.supabase.auth.sign_out()
        except AuthError as e:
            # Tokens are stateless JWTs; the client discarding it is what matters
            logger.info(f"Supabase sign_out failed: {e}")

    async def get_current_user(self, token: str) -> Optional[User]:
        """User for a bearer token, or None when the token is invalid or has no users row.

        users.id is the Supabase Auth user id; there is no fallback on email.
        """
        cache_key = hashlib.sha256(token.encode()).hexdigest()
        now = time.monotonic()
        auth_user_id = None
        if cache_key in _AUTH_IDENTITY_CACHE:
            auth_user_id, expiry = _AUTH_IDENTITY_CACHE[cache_key]
            if now >= expiry:
                del _AUTH_IDENTITY_CACHE[cache_key]
                auth_user_id = None

        if auth_user_id is None:
            try:
                user_response = await self.supabase.auth.get_user(jwt=token)
            except AuthError as e:
                if is_auth_outage(e):
                    logger.error(f"Supabase Auth unavailable while checking token: {e}")
                    raise AuthUnavailable() from e
                logger.info(f"Rejected bearer token: {e}")
                return None
            if not user_response or not user_response.user:
                return None
            auth_user_id = user_response.user.id
            if len(_AUTH_IDENTITY_CACHE) < _AUTH_CACHE_MAX_SIZE:
                _AUTH_IDENTITY_CACHE[cache_key] = (auth_user_id, now + _AUTH_CACHE_TTL_SEC)

        return await self.store.get_user(auth_user_id)


class AuthAccounts:
    """Login credentials kept in Supabase Auth (needs the service role client)"""

    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    def _translate(self, error: AuthError, operation: str) -> AppError:
        if is_auth_outage(error):
            logger.error(f"Supabase Auth unavailable during {operation}: {error}")
            return AuthUnavailable()
        if getattr(error, "code", None) in _EMAIL_TAKEN_CODES:
            return ConflictError("User with this email already exists")
        logger.info(f"Supabase Auth rejected {operation}: {error}")
        return ValidationError(getattr(error, "message", None) or str(error))

    async def create_account(self, email: str, password: str, name: Optional[str] = None) -> str:
        """Create a confirmed login for email; returns the Supabase Auth user id"""
        try:
            response = await self.supabase.auth.admin.create_user({
                "email": email,
                "password": password,
                "email_confirm": True,
                "user_metadata": {"name": name} if name else {},
            })
        except AuthError as e:
            raise self._translate(e, "create_account") from e
        if not response or not response.user:
            raise AuthUnavailable("Supabase Auth did not return the created account")
        logger.info(f"Created auth account for {email}")
        return response.user.id

    async def update_email(self, auth_user_id: str, email: str) -> None:
        try:
            await self.supabase.auth.admin.update_user_by_id(
                auth_user_id, {"email": email, "email_confirm": True}
            )
        except AuthError as e:
            raise self._translate(e, "update_email") from e

    async def delete_account(self, auth_user_id: str) -> None:
        try:
            await self.supabase.auth.admin.delete_user(auth_user_id)
        except AuthError as e:
            if getattr(e, "status", None) == 404:
                logger.info(f"No auth account for {auth_user_id}; nothing to delete")
                return
            raise self._translate(e, "delete_account") from e
        logger.info(f"Deleted auth account {auth_user_id}")
