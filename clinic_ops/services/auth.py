"""
Email/password session handling on top of Supabase auth
"""

import logging
from typing import Any, Optional

from ..exceptions import ClinicAuthError

logger = logging.getLogger(__name__)


class ClinicAuth:
    """Tracks the signed-in staff user for one client"""

    def __init__(self, client: Any):
        self.client = client
        self.user: Optional[Any] = None

    @property
    def is_signed_in(self) -> bool:
        return self.user is not None

    @property
    def email(self) -> Optional[str]:
        return getattr(self.user, "email", None)

    async def sign_in(self, email: str, password: str) -> Any:
        """
        Sign in with email and password

        Returns:
            The signed-in user

        Raises:
            ClinicAuthError: If the credentials are rejected or the server is unreachable
        """
        try:
            response = await self.client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            logger.error(f"❌ Sign in failed for {email}: {e}")
            raise ClinicAuthError(f"Sign in failed: {e}") from e

        if response.user is None:
            raise ClinicAuthError("Sign in failed: no user returned")

        self.user = response.user
        logger.info(f"✅ Signed in: {email}")
        return self.user

    async def sign_up(self, email: str, password: str) -> bool:
        """
        Register a new account

        Returns:
            True when a session was opened right away, False when the
            project requires email confirmation first

        Raises:
            ClinicAuthError: If registration fails
        """
        try:
            response = await self.client.auth.sign_up({"email": email, "password": password})
        except Exception as e:
            logger.error(f"❌ Sign up failed for {email}: {e}")
            raise ClinicAuthError(f"Sign up failed: {e}") from e

        if response.user is None:
            raise ClinicAuthError("Sign up failed: no user returned")

        if response.session is None:
            logger.info(f"📧 Confirmation email sent to {email}")
            return False

        self.user = response.user
        logger.info(f"✅ Signed up and signed in: {email}")
        return True

    async def sign_out(self) -> None:
        try:
            await self.client.auth.sign_out()
        except Exception as e:
            logger.error(f"❌ Sign out failed: {e}")
            raise ClinicAuthError(f"Sign out failed: {e}") from e
        finally:
            self.user = None
