"""Sign-in, session restore and registration against the hosted auth service."""

from dataclasses import dataclass
from typing import Iterable, Optional

from pydantic import ValidationError

from wanderlust.models.auth import AuthUser, AvatarUpload, LoginRequest, RegistrationRequest
from wanderlust.models.result import Err, ErrorKind, Ok, Result
from wanderlust.models.trip import Profile
from wanderlust.services.supabase_client import SupabaseAuthError, SupabaseClient, SupabaseError
from wanderlust.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_ROLES = ("user",)


@dataclass
class AuthContext:
    """
    The signed-in user, passed explicitly to whatever needs it.

    Created by AuthService on sign-in or restore; there is no module-level
    current user.
    """

    user_id: str
    email: Optional[str] = None
    role: str = "user"
    access_token: Optional[str] = None
    is_blocked: bool = False

    def require_user(self) -> str:
        if not self.user_id:
            raise SupabaseAuthError("Please log in to continue.")
        return self.user_id


class AuthService:
    """Authentication service."""

    def __init__(self, client: SupabaseClient, allowed_roles: Iterable[str] = DEFAULT_ROLES):
        self.client = client
        self.allowed_roles = tuple(allowed_roles)

    async def _load_context(self, user: AuthUser, access_token: Optional[str]) -> AuthContext:
        row = await self.client.select_one("profiles", filters={"id": user.id})
        profile = Profile.model_validate(row) if row else None
        return AuthContext(
            user_id=user.id,
            email=user.email or (profile.email if profile else None),
            role=profile.role if profile else "user",
            access_token=access_token,
            is_blocked=profile.is_blocked if profile else False,
        )

    async def sign_in(self, email: str, password: str) -> Result:
        """
        Sign in with email and password.

        Returns:
            Ok(AuthContext), Err(VALIDATION) for malformed input, or Err(AUTH)
            for bad credentials and accounts that may not use the app
        """
        try:
            login = LoginRequest(email=email, password=password)
        except ValidationError as e:
            return Err(ErrorKind.VALIDATION, e.errors()[0]["msg"])

        try:
            session = await self.client.sign_in_with_password(login.email, login.password)
            context = await self._load_context(session.user, session.access_token)
        except SupabaseAuthError as e:
            logger.warning("sign_in_rejected", email=email, error=str(e))
            return Err(ErrorKind.AUTH, str(e))
        except SupabaseError as e:
            logger.error("sign_in_failed", email=email, error=str(e))
            return Err(ErrorKind.NETWORK, str(e))

        return await self.ensure_allowed(context)

    async def sign_out(self) -> None:
        try:
            await self.client.sign_out()
        except SupabaseError as e:
            # Local session is already cleared by the client
            logger.warning("sign_out_failed", error=str(e))

    async def restore(self, access_token: str) -> Optional[AuthContext]:
        """Resume a stored session. Returns None when the token is no longer valid."""
        self.client.set_session(access_token)
        user = await self.client.get_user()
        if user is None:
            self.client.set_session(None)
            logger.info("session_expired")
            return None

        context = await self._load_context(user, access_token)
        result = await self.ensure_allowed(context)
        return result.value if result.ok else None

    async def ensure_allowed(
        self,
        context: AuthContext,
        roles: Optional[Iterable[str]] = None,
    ) -> Result:
        """Sign out blocked accounts and roles that may not use the app."""
        roles = tuple(roles) if roles is not None else self.allowed_roles

        message = None
        if context.is_blocked:
            message = "Your account has been blocked."
        elif context.role not in roles:
            message = "You are not allowed to use this app."

        if message:
            logger.warning(
                "auth_access_denied",
                user_id=context.user_id,
                role=context.role,
                blocked=context.is_blocked,
            )
            await self.sign_out()
            return Err(ErrorKind.AUTH, message)

        return Ok(context)

    async def email_exists(self, email: str) -> Result:
        """Ok(bool) telling whether an account already uses the email."""
        try:
            data = await self.client.invoke_function("check-email-exists", json={"email": email})
        except SupabaseError as e:
            logger.error("email_check_failed", error=str(e))
            return Err(ErrorKind.NETWORK, "Server error, please try again.")
        return Ok(bool(isinstance(data, dict) and data.get("exists")))

    async def register(self, request: RegistrationRequest, avatar: AvatarUpload) -> Result:
        """Create the account and profile in one multipart call."""
        exists = await self.email_exists(request.email)
        if not exists.ok:
            return exists
        if exists.value:
            return Err(ErrorKind.CONFLICT, "Email already exists.")

        try:
            data = await self.client.invoke_function(
                "user-register",
                data=request.to_form(),
                files={"avatarFile": (avatar.filename, avatar.content, avatar.content_type)},
            )
        except SupabaseError as e:
            logger.error("registration_failed", error=str(e))
            return Err(ErrorKind.NETWORK, f"Registration failed: {e}")

        logger.info("registration_completed", email=request.email)
        return Ok(data)
