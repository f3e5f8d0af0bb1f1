"""Application wiring: the shared storefront and its browsing sessions."""

import logging
import time
from typing import Callable

from .cart import Cart, CartEngine
from .catalog import CatalogMirror, seed_catalog
from .checkout import OrderSubmission, SubmissionResult
from .config import StorefrontConfig
from .document_store import MemoryDocumentStore, create_store
from .errors import AuthError, InitializationError, SessionNotFoundError
from .identity import LocalIdentityProvider
from .models import _generate_id
from .session import SessionIdentity
from .views import AppState, Page

logger = logging.getLogger(__name__)


def open_store(config: StorefrontConfig) -> MemoryDocumentStore:
    """
    Create the configured document store.

    Raises:
        InitializationError: If the backend can't be set up.
    """
    try:
        if config.backend == "json":
            config.data_dir.mkdir(parents=True, exist_ok=True)
        return create_store(config.backend, config.data_dir)
    except (OSError, ValueError) as e:
        logger.error("Storefront initialization error: %s", e)
        raise InitializationError(str(e)) from e


class StorefrontSession:
    """
    One browsing session.

    Owns the view state, the signed-in principal, the cart and the order
    submission machine. Nothing here is persisted; closing the session
    drops the cart and revokes the session token it was issued.
    """

    def __init__(self, session_id: str, storefront: "Storefront", now: float = 0.0):
        self.id = session_id
        self.storefront = storefront
        self.last_seen = now
        self.state = AppState()
        self.cart = CartEngine(advise=self.state.advise)
        self.auth = storefront.identity.client()
        self.identity = SessionIdentity(
            self.auth,
            self.cart,
            advise=self.state.advise,
            navigate_home=lambda: self.state.navigate(Page.HOME),
        )
        self.identity.add_listener(self.state.on_principal_changed)
        self.checkout = OrderSubmission(
            storefront.store,
            storefront.config.orders_collection,
            self.cart,
            principal=lambda: self.identity.principal,
            advise=self.state.advise,
            on_confirmed=lambda order: self.state.navigate(Page.ORDER_CONFIRMATION),
        )

    async def start(self, initial_token: str | None = None) -> None:
        try:
            await self.identity.start(initial_token)
        finally:
            self.state.loading = False

    def add_to_cart(self, product_id: str, quantity: int = 1) -> Cart:
        """
        Add a catalog product to the cart.

        Raises:
            ProductNotFoundError: If the product isn't in the mirrored catalog.
        """
        product = self.storefront.catalog.require(product_id)
        return self.cart.add_item(product, quantity)

    async def place_order(self) -> SubmissionResult:
        return await self.checkout.submit()

    async def close(self) -> None:
        self.identity.close()
        self.cart.clear()
        try:
            await self.auth.release()
        except AuthError as e:
            logger.warning("Could not revoke token of session %s: %s", self.id, e)


class Storefront:
    """
    Shared backend handles, the catalog mirror and the open sessions.

    Sessions idle for longer than ``config.session_idle_timeout`` seconds are
    closed when the next session is opened, and at most
    ``config.max_sessions`` are kept (least recently used go first).
    """

    def __init__(
        self,
        config: StorefrontConfig,
        store: MemoryDocumentStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._store = store
        self._clock = clock
        self._identity: LocalIdentityProvider | None = None
        self._catalog: CatalogMirror | None = None
        self.sessions: dict[str, StorefrontSession] = {}
        self.catalog_notice: str | None = None
        self.started = False

    @property
    def store(self) -> MemoryDocumentStore:
        if self._store is None:
            raise InitializationError("storefront has not been started")
        return self._store

    @property
    def identity(self) -> LocalIdentityProvider:
        if self._identity is None:
            raise InitializationError("storefront has not been started")
        return self._identity

    @property
    def catalog(self) -> CatalogMirror:
        if self._catalog is None:
            raise InitializationError("storefront has not been started")
        return self._catalog

    async def start(self) -> None:
        """
        Connect to the backend and start mirroring the catalog.

        Raises:
            InitializationError: If the backend can't be set up.
        """
        if self.started:
            return
        if self._store is None:
            self._store = open_store(self.config)

        self._identity = LocalIdentityProvider(self._store, self.config.identity_namespace)
        self._catalog = CatalogMirror(
            self._store, self.config.products_collection, advise=self._catalog_advisory
        )
        await self._catalog.start()
        await self._catalog.settled()
        self.started = True
        logger.info("Storefront started (backend=%s, app=%s)", self.config.backend, self.config.app_id)

    async def close(self) -> None:
        try:
            for session_id in list(self.sessions):
                await self.close_session(session_id)
            if self._catalog is not None:
                await self._catalog.close()
        finally:
            if self._store is not None:
                self._store.close()
            self.started = False

    def _catalog_advisory(self, message: str) -> None:
        self.catalog_notice = message
        for session in self.sessions.values():
            session.state.advise(message)

    def _expired(self, session: StorefrontSession, now: float) -> bool:
        return now - session.last_seen > self.config.session_idle_timeout

    async def open_session(self, initial_token: str | None = None) -> StorefrontSession:
        """Create a browsing session and sign it in (resume or anonymous)."""
        await self.evict_sessions()
        now = self._clock()
        session = StorefrontSession(_generate_id(), self, now=now)
        self.sessions[session.id] = session
        if self.catalog_notice:
            session.state.advise(self.catalog_notice)
        await session.start(initial_token or self.config.initial_auth_token)
        return session

    def find_session(self, session_id: str) -> StorefrontSession | None:
        """Return a live session and mark it as used, or None if unknown or idle too long."""
        session = self.sessions.get(session_id)
        if session is None:
            return None
        now = self._clock()
        if self._expired(session, now):
            return None
        session.last_seen = now
        return session

    def get_session(self, session_id: str) -> StorefrontSession:
        """
        Raises:
            SessionNotFoundError: If the session ID doesn't exist or has expired.
        """
        session = self.find_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def close_session(self, session_id: str) -> None:
        session = self.sessions.pop(session_id, None)
        if session is not None:
            await session.close()

    async def evict_sessions(self) -> int:
        """
        Close idle sessions, then the least recently used ones until there is
        room for one more.

        Returns:
            Number of sessions closed.
        """
        now = self._clock()
        evicted = [s.id for s in self.sessions.values() if self._expired(s, now)]
        remaining = sorted(
            (s for s in self.sessions.values() if s.id not in evicted),
            key=lambda s: s.last_seen,
        )
        overflow = len(remaining) - (self.config.max_sessions - 1)
        if overflow > 0:
            evicted.extend(s.id for s in remaining[:overflow])

        for session_id in evicted:
            await self.close_session(session_id)
        if evicted:
            logger.info("Closed %d browsing session(s)", len(evicted))
        return len(evicted)

    async def seed(self) -> int:
        return await seed_catalog(self.store, self.config.products_collection)
