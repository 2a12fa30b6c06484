"""Authentication and session management."""

import json
import logging
import os
from pathlib import Path
from typing import Awaitable, Callable, Optional

from .models import AuthState, SessionData

logger = logging.getLogger(__name__)

AuthListener = Callable[[AuthState], Awaitable[None]]


class AuthManager:
    """Manages authentication state, session persistence and lifecycle events."""

    def __init__(self, session_file: Optional[str] = None) -> None:
        """
        Initialize the authentication manager.

        Args:
            session_file: Path to store session data. Defaults to ~/.storefront_session.json
        """
        if session_file is None:
            session_file = str(Path.home() / ".storefront_session.json")
        self.session_file = session_file
        self.session: SessionData = self._load_session()
        self._listeners: list[AuthListener] = []

        # A token issued elsewhere can be handed over through the environment
        self._load_token_from_env()

    def _load_session(self) -> SessionData:
        """Load session data from file if it exists."""
        if os.path.exists(self.session_file):
            try:
                with open(self.session_file, "r") as f:
                    data = json.load(f)
                    return SessionData(**data)
            except (json.JSONDecodeError, ValueError, TypeError) as e:
                logger.warning(f"Could not load session, starting fresh: {e}")
        return SessionData()

    def _save_session(self) -> None:
        """Save session data to file."""
        with open(self.session_file, "w") as f:
            json.dump(self.session.model_dump(), f, default=str)
        os.chmod(self.session_file, 0o600)

    def _load_token_from_env(self) -> None:
        """
        Load a pre-issued bearer session from environment variables.

        Environment variable mapping:
        - STOREFRONT_ACCESS_TOKEN → bearer credential (required)
        - STOREFRONT_USER_ID → identity the token belongs to (required)
        - STOREFRONT_USER_EMAIL → display email (optional)
        """
        token = os.environ.get("STOREFRONT_ACCESS_TOKEN")
        user_id = os.environ.get("STOREFRONT_USER_ID")

        if token and user_id:
            logger.info(f"✓ Loaded access token for user {user_id} from environment")
            self.session = SessionData(
                access_token=token,
                user_id=user_id,
                user_email=os.environ.get("STOREFRONT_USER_EMAIL"),
                is_authenticated=True,
            )
            self._save_session()
        elif token or user_id:
            logger.warning("STOREFRONT_ACCESS_TOKEN and STOREFRONT_USER_ID must be set together")
        else:
            logger.debug("No access token found in environment variables")

    def save_session(self, access_token: str, user_id: str, user_email: Optional[str] = None) -> None:
        """
        Save authentication session.

        Args:
            access_token: Bearer credential issued by the identity provider
            user_id: Identity the credential belongs to
            user_email: User's email address
        """
        self.session = SessionData(
            access_token=access_token,
            user_id=user_id,
            user_email=user_email,
            is_authenticated=True,
        )
        self._save_session()

    def get_session(self) -> SessionData:
        """Get current session data."""
        return self.session

    def clear_session(self) -> None:
        """Clear the current session."""
        self.session = SessionData()
        if os.path.exists(self.session_file):
            os.remove(self.session_file)

    def is_authenticated(self) -> bool:
        """Check if there's an active authenticated session."""
        return self.session.is_authenticated and bool(self.session.access_token)

    def get_access_token(self) -> Optional[str]:
        """Get the bearer credential, if any."""
        return self.session.access_token if self.is_authenticated() else None

    def auth_state(self) -> AuthState:
        """Snapshot of the current identity and credential."""
        if not self.is_authenticated():
            return AuthState()
        return AuthState(user_id=self.session.user_id, access_token=self.session.access_token)

    def subscribe(self, listener: AuthListener) -> None:
        """Register a coroutine called with the new AuthState on login and logout."""
        self._listeners.append(listener)

    async def _notify(self) -> None:
        state = self.auth_state()
        for listener in self._listeners:
            await listener(state)

    async def login(self, access_token: str, user_id: str, user_email: Optional[str] = None) -> AuthState:
        """Establish a session and notify listeners."""
        logger.info(f"=== LOGIN: user_id={user_id} ===")
        self.save_session(access_token=access_token, user_id=user_id, user_email=user_email)
        await self._notify()
        return self.auth_state()

    async def logout(self) -> None:
        """Terminate the session and notify listeners."""
        logger.info("=== LOGOUT ===")
        self.clear_session()
        await self._notify()
