"""Pytest fixtures for storefront tests."""

import tempfile
from decimal import Decimal
from pathlib import Path

import pytest

from storefront.document_store import MemoryDocumentStore, SnapshotStream
from storefront.errors import StoreError
from storefront.identity import LocalIdentityProvider
from storefront.models import Principal, PrincipalKind, Product

PRODUCTS = "artifacts/test-app/public/data/products"
ORDERS = "artifacts/test-app/public/data/orders"


class RecordingStore(MemoryDocumentStore):
    """Memory store that counts calls and can be told to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.list_calls: list[str] = []
        self.create_calls: list[str] = []
        self.fail_creates: StoreError | None = None
        self.fail_subscribe: StoreError | None = None

    async def list_documents(self, collection):
        self.list_calls.append(collection)
        return await super().list_documents(collection)

    async def create_document(self, collection, fields):
        self.create_calls.append(collection)
        if self.fail_creates is not None:
            raise self.fail_creates
        return await super().create_document(collection, fields)

    async def subscribe(self, collection):
        if self.fail_subscribe is not None:
            stream = SnapshotStream(collection, self._detach)
            stream.push(self.fail_subscribe)
            return stream
        return await super().subscribe(collection)

    def push_error(self, collection: str, error: StoreError) -> None:
        """Deliver an error to every open subscription on a collection."""
        for stream in list(self._streams.get(collection, [])):
            stream.push(error)


def make_product(product_id: str, price: str, name: str | None = None, stock: int = 10) -> Product:
    return Product(
        id=product_id,
        name=name or f"Product {product_id}",
        price=Decimal(price),
        description="",
        image_url=f"https://example.com/{product_id}.png",
        stock=stock,
    )


def make_principal(uid: str = "user-1", email: str | None = None) -> Principal:
    kind = PrincipalKind.CREDENTIALED if email else PrincipalKind.ANONYMOUS
    return Principal(uid=uid, kind=kind, email=email)


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def provider(store):
    return LocalIdentityProvider(store, namespace="artifacts/test-app/identity")


@pytest.fixture
def advisories():
    """Collects advisory messages; pass ``advisories.append`` as ``advise``."""
    return []
