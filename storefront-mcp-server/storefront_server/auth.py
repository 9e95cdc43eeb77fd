"""Authentication and session management."""

import json
import os
from pathlib import Path
from typing import Optional
import logging

from pydantic import ValidationError

from .models import Identity, SessionData

logger = logging.getLogger(__name__)


class AuthManager:
    """Manages the shop user's bearer token and session persistence."""

    def __init__(self, session_file: Optional[str] = None, env_token: Optional[str] = None) -> None:
        """
        Initialize the authentication manager.

        Args:
            session_file: Path to store session data. Defaults to ~/.storefront_session.json
            env_token: Pre-issued bearer token (STOREFRONT_TOKEN); overrides the saved session
        """
        if session_file is None:
            session_file = str(Path.home() / ".storefront_session.json")
        self.session_file = session_file
        self.session: SessionData = self._load_session()

        if env_token:
            logger.info("Using bearer token from environment")
            self.session = SessionData(token=env_token, is_authenticated=True)

    def _load_session(self) -> SessionData:
        """Load session data from file if it exists."""
        if os.path.exists(self.session_file):
            try:
                with open(self.session_file, "r") as f:
                    session = SessionData(**json.load(f))
                if session.is_authenticated:
                    logger.info(f"Loaded existing session from {self.session_file}")
                return session
            except (OSError, ValueError, TypeError, ValidationError) as e:
                # If file is corrupted, start fresh
                logger.warning(f"Could not load session: {e}")
        return SessionData()

    def _save_session(self) -> None:
        """Save session data to file."""
        try:
            with open(self.session_file, "w") as f:
                json.dump(self.session.model_dump(), f, default=str)
            # Set restrictive permissions on session file
            os.chmod(self.session_file, 0o600)
        except OSError as e:
            logger.error(f"Could not save session: {e}")

    def save_session(self, session: SessionData) -> None:
        """Persist a freshly issued session."""
        self.session = session
        self._save_session()
        logger.info(f"Session saved to {self.session_file}")

    def clear_session(self) -> None:
        """Clear the current session."""
        self.session = SessionData()
        if os.path.exists(self.session_file):
            try:
                os.remove(self.session_file)
                logger.info("Session cleared")
            except OSError as e:
                logger.warning(f"Could not delete session file: {e}")

    def is_authenticated(self) -> bool:
        """Check if there's an active authenticated session."""
        return self.session.is_authenticated and bool(self.session.token)

    def get_token(self) -> Optional[str]:
        return self.session.token if self.is_authenticated() else None

    def identity(self) -> Identity:
        """Identity the cart should run under."""
        token = self.get_token()
        return Identity.authenticated(token) if token else Identity.guest()
