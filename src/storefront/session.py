"""Session identity: who is signed in to a browsing session."""

import logging
from enum import Enum
from typing import Callable

from .cart import Advise, CartEngine
from .errors import AuthError
from .identity import AuthClient
from .models import Principal

logger = logging.getLogger(__name__)

SIGN_IN_FAILED = "Failed to sign in. Please refresh."


class IdentityState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    ANONYMOUS = "anonymous"
    CREDENTIALED = "credentialed"


class SessionIdentity:
    """
    Tracks the principal of one session through the provider's change feed.

    Register, login and logout are single provider calls. Provider errors
    are reported verbatim and change nothing locally. Logout also clears
    the cart.
    """

    def __init__(
        self,
        auth: AuthClient,
        cart_engine: CartEngine,
        advise: Advise | None = None,
        navigate_home: Callable[[], None] | None = None,
    ):
        self.auth = auth
        self.cart_engine = cart_engine
        self.principal: Principal | None = None
        self._advise = advise or (lambda message: None)
        self._navigate_home = navigate_home or (lambda: None)
        self._listeners: list[Callable[[Principal | None], None]] = []
        self._unsubscribe = auth.subscribe(self._on_principal_changed)

    @property
    def state(self) -> IdentityState:
        if self.principal is None:
            return IdentityState.UNAUTHENTICATED
        if self.principal.is_anonymous:
            return IdentityState.ANONYMOUS
        return IdentityState.CREDENTIALED

    @property
    def email(self) -> str | None:
        return self.principal.email if self.principal else None

    def add_listener(self, listener: Callable[[Principal | None], None]) -> None:
        self._listeners.append(listener)

    def _on_principal_changed(self, principal: Principal | None) -> None:
        self.principal = principal
        logger.debug("Auth state changed. User: %s", principal.uid if principal else "None")
        for listener in list(self._listeners):
            listener(principal)

    async def start(self, initial_token: str | None = None) -> Principal | None:
        """Resume ``initial_token`` if given and valid, else sign in anonymously."""
        if initial_token:
            try:
                return await self.auth.resume_session(initial_token)
            except AuthError as e:
                logger.warning("Could not resume session: %s", e)
        try:
            return await self.auth.create_anonymous_session()
        except AuthError as e:
            logger.error("Error during initial sign-in: %s", e)
            self._advise(SIGN_IN_FAILED)
            return None

    async def register(self, email: str, password: str) -> bool:
        try:
            await self.auth.register_principal(email, password)
        except AuthError as e:
            logger.error("Registration error: %s", e)
            self._advise(f"Registration failed: {e}")
            return False
        self._advise("Registration successful! You are now logged in.")
        self._navigate_home()
        return True

    async def login(self, email: str, password: str) -> bool:
        try:
            await self.auth.create_session(email, password)
        except AuthError as e:
            logger.error("Login error: %s", e)
            self._advise(f"Login failed: {e}")
            return False
        self._advise("Login successful!")
        self._navigate_home()
        return True

    async def logout(self) -> bool:
        try:
            await self.auth.end_session()
        except AuthError as e:
            logger.error("Logout error: %s", e)
            self._advise(f"Logout failed: {e}")
            return False
        self.cart_engine.clear()
        self._advise("Logged out successfully.")
        self._navigate_home()
        return True

    def close(self) -> None:
        self._unsubscribe()
