"""Custom exceptions for storefront."""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class InitializationError(StorefrontError):
    """Raised when the backend is misconfigured and the app cannot start."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to initialize storefront: {reason}")


class StoreError(StorefrontError):
    """Raised when a document store operation fails."""

    def __init__(self, message: str, collection: str | None = None):
        self.collection = collection
        super().__init__(message)


class PermissionDeniedError(StoreError):
    """Raised when the store rejects access to a collection."""

    def __init__(self, collection: str):
        super().__init__(f"Missing or insufficient permissions for '{collection}'", collection)


class DocumentNotFoundError(StoreError):
    """Raised when a document ID doesn't exist in a collection."""

    def __init__(self, collection: str, doc_id: str):
        self.doc_id = doc_id
        super().__init__(f"Document not found: {collection}/{doc_id}", collection)


class InvalidDocumentError(StoreError):
    """Raised when stored documents can't be read as the expected model."""

    def __init__(self, collection: str, doc_ids: list[str]):
        self.doc_ids = doc_ids
        super().__init__(
            f"Invalid documents in '{collection}': {', '.join(doc_ids)}", collection
        )


class AuthError(StorefrontError):
    """Raised by the identity provider; the message is shown to users as-is."""

    MESSAGES = {
        "auth/email-already-in-use": "The email address is already in use by another account.",
        "auth/invalid-email": "The email address is badly formatted.",
        "auth/weak-password": "Password should be at least 6 characters.",
        "auth/invalid-credential": "The email or password is incorrect.",
        "auth/invalid-token": "The session token is invalid or has expired.",
    }

    def __init__(self, code: str, message: str | None = None):
        self.code = code
        super().__init__(message or self.MESSAGES.get(code, code) + f" ({code})")


class InvalidQuantityError(StorefrontError):
    """Raised when a cart quantity is not a positive integer."""

    def __init__(self, quantity: object):
        self.quantity = quantity
        super().__init__(f"Invalid quantity: {quantity!r} (must be a positive integer)")


class ProductNotFoundError(StorefrontError):
    """Raised when a product ID isn't in the catalog."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class SessionNotFoundError(StorefrontError):
    """Raised when a browsing session ID doesn't exist."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")
