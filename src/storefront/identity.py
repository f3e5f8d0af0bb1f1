"""Email/password and anonymous identity provider.

``LocalIdentityProvider`` keeps accounts and session tokens in a document
store; each browsing session talks to it through its own ``AuthClient``,
which tracks the current principal and notifies subscribers when it changes.
"""

import hashlib
import hmac
import logging
import os
import re
from typing import Any, Callable

from .document_store import MemoryDocumentStore
from .errors import AuthError, DocumentNotFoundError, StoreError
from .models import Principal, PrincipalKind, _generate_id

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6
PBKDF2_ITERATIONS = 100_000

PrincipalListener = Callable[[Principal | None], None]


def hash_password(password: str, salt: str) -> str:
    """PBKDF2-SHA256 hash of a password, hex encoded."""
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt), PBKDF2_ITERATIONS
    )
    return digest.hex()


class LocalIdentityProvider:
    """Identity provider backed by two collections: accounts and sessions."""

    def __init__(self, store: MemoryDocumentStore, namespace: str = "identity"):
        self.store = store
        self.accounts_collection = f"{namespace}/accounts"
        self.sessions_collection = f"{namespace}/sessions"

    def client(self) -> "AuthClient":
        """Create a client for one browsing session."""
        return AuthClient(self)

    async def _find_account(self, email: str) -> dict[str, Any] | None:
        for doc in await self.store.list_documents(self.accounts_collection):
            if doc.data.get("email") == email:
                return doc.data
        return None

    async def _issue_token(self, principal: Principal) -> str:
        return await self.store.create_document(
            self.sessions_collection, principal.to_dict()
        )

    async def sign_up(self, email: str, password: str) -> tuple[Principal, str]:
        """
        Register a credentialed principal and sign it in.

        Raises:
            AuthError: If the email is malformed or taken, or the password is weak.
        """
        email = email.strip().lower()
        if not EMAIL_RE.match(email):
            raise AuthError("auth/invalid-email")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError("auth/weak-password")
        try:
            if await self._find_account(email) is not None:
                raise AuthError("auth/email-already-in-use")
            salt = os.urandom(16).hex()
            principal = Principal(
                uid=_generate_id(), kind=PrincipalKind.CREDENTIALED, email=email
            )
            await self.store.create_document(
                self.accounts_collection,
                {
                    "uid": principal.uid,
                    "email": email,
                    "salt": salt,
                    "password_hash": hash_password(password, salt),
                },
            )
            token = await self._issue_token(principal)
        except StoreError as e:
            raise AuthError("auth/internal-error", str(e)) from e
        logger.info("Registered principal %s", principal.uid)
        return principal, token

    async def sign_in(self, email: str, password: str) -> tuple[Principal, str]:
        """
        Sign in with email and password.

        Raises:
            AuthError: If the credentials don't match an account.
        """
        email = email.strip().lower()
        if not EMAIL_RE.match(email):
            raise AuthError("auth/invalid-email")
        try:
            account = await self._find_account(email)
            if account is None or not hmac.compare_digest(
                account["password_hash"], hash_password(password, account["salt"])
            ):
                raise AuthError("auth/invalid-credential")
            principal = Principal(
                uid=account["uid"], kind=PrincipalKind.CREDENTIALED, email=email
            )
            token = await self._issue_token(principal)
        except StoreError as e:
            raise AuthError("auth/internal-error", str(e)) from e
        return principal, token

    async def sign_in_anonymously(self) -> tuple[Principal, str]:
        principal = Principal(uid=_generate_id(), kind=PrincipalKind.ANONYMOUS)
        try:
            token = await self._issue_token(principal)
        except StoreError as e:
            raise AuthError("auth/internal-error", str(e)) from e
        return principal, token

    async def verify_token(self, token: str) -> Principal:
        """
        Resolve a session token to its principal.

        Raises:
            AuthError: If the token is unknown or revoked.
        """
        try:
            doc = await self.store.get_document(self.sessions_collection, token)
        except DocumentNotFoundError as e:
            raise AuthError("auth/invalid-token") from e
        except StoreError as e:
            raise AuthError("auth/internal-error", str(e)) from e
        return Principal(
            uid=doc.data["uid"],
            kind=PrincipalKind(doc.data["kind"]),
            email=doc.data.get("email"),
        )

    async def revoke_token(self, token: str) -> None:
        try:
            await self.store.delete_document(self.sessions_collection, token)
        except DocumentNotFoundError:
            pass
        except StoreError as e:
            raise AuthError("auth/internal-error", str(e)) from e


class AuthClient:
    """Per-session view of the identity provider."""

    def __init__(self, provider: LocalIdentityProvider):
        self._provider = provider
        self._listeners: list[PrincipalListener] = []
        self.current_principal: Principal | None = None
        self.token: str | None = None
        # False when the token was handed in from outside (resume_session)
        self.owns_token = False

    def subscribe(self, listener: PrincipalListener) -> Callable[[], None]:
        """
        Register a principal-change listener.

        The listener is called immediately with the current principal, then
        after every change. Returns an unsubscribe callable.
        """
        self._listeners.append(listener)
        listener(self.current_principal)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_principal(
        self, principal: Principal | None, token: str | None, owns_token: bool = True
    ) -> None:
        self.current_principal = principal
        self.token = token
        self.owns_token = token is not None and owns_token
        for listener in list(self._listeners):
            listener(principal)

    async def create_anonymous_session(self) -> Principal:
        principal, token = await self._provider.sign_in_anonymously()
        self._set_principal(principal, token)
        return principal

    async def create_session(self, email: str, password: str) -> Principal:
        principal, token = await self._provider.sign_in(email, password)
        self._set_principal(principal, token)
        return principal

    async def register_principal(self, email: str, password: str) -> Principal:
        principal, token = await self._provider.sign_up(email, password)
        self._set_principal(principal, token)
        return principal

    async def resume_session(self, token: str) -> Principal:
        principal = await self._provider.verify_token(token)
        self._set_principal(principal, token, owns_token=False)
        return principal

    async def end_session(self) -> None:
        if self.token is not None:
            await self._provider.revoke_token(self.token)
        self._set_principal(None, None)

    async def release(self) -> None:
        """
        Revoke the token this client was issued, without notifying listeners.

        Resumed tokens belong to whoever handed them in and stay valid.
        """
        if self.token is not None and self.owns_token:
            await self._provider.revoke_token(self.token)
        self.current_principal = None
        self.token = None
        self.owns_token = False
