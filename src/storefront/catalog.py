"""Catalog mirror: a local, read-only copy of the remote products collection."""

import asyncio
import logging
from typing import Any, Callable, Iterable

from .document_store import Document, MemoryDocumentStore, Snapshot, SnapshotStream
from .errors import (
    InvalidDocumentError,
    PermissionDeniedError,
    ProductNotFoundError,
    StoreError,
)
from .models import Product

logger = logging.getLogger(__name__)

LOAD_FAILED = "Failed to load products. Please try again later."
LOAD_DENIED = (
    "Failed to load products. Please check the store's security rules "
    "for the 'products' collection."
)

# Demonstration dataset written when the catalog is empty
SEED_PRODUCTS: list[dict[str, Any]] = [
    {
        "name": "Wireless Headphones",
        "description": "High-fidelity sound with comfortable earcups and long battery life. Perfect for music lovers.",
        "price": "99.99",
        "imageUrl": "https://placehold.co/300x200/4F46E5/ffffff?text=Headphones",
        "stock": 50,
    },
    {
        "name": "Smartwatch Pro",
        "description": "Track your fitness, receive notifications, and make calls right from your wrist. Waterproof design.",
        "price": "199.99",
        "imageUrl": "https://placehold.co/300x200/EC4899/ffffff?text=Smartwatch",
        "stock": 30,
    },
    {
        "name": "Portable Bluetooth Speaker",
        "description": "Compact and powerful speaker with rich bass. Ideal for outdoor adventures and parties.",
        "price": "49.99",
        "imageUrl": "https://placehold.co/300x200/10B981/ffffff?text=Speaker",
        "stock": 75,
    },
    {
        "name": "Ergonomic Office Chair",
        "description": "Designed for ultimate comfort and support during long working hours. Adjustable features.",
        "price": "249.99",
        "imageUrl": "https://placehold.co/300x200/F59E0B/ffffff?text=Office+Chair",
        "stock": 20,
    },
    {
        "name": "4K LED Smart TV",
        "description": "Experience stunning visuals and smart features with this immersive 4K television. Large display.",
        "price": "799.99",
        "imageUrl": "https://placehold.co/300x200/06B6D4/ffffff?text=4K+TV",
        "stock": 15,
    },
]


def parse_products(documents: Iterable[Document]) -> tuple[tuple[Product, ...], list[str]]:
    """
    Read product documents.

    Returns:
        The valid products in document order, and the IDs of documents that
        couldn't be read (bad or negative price, bad or negative stock).
    """
    products: list[Product] = []
    invalid: list[str] = []
    for doc in documents:
        try:
            products.append(Product.from_document(doc.id, doc.data))
        except (TypeError, ValueError) as e:
            logger.warning("Skipping product %s: %s", doc.id, e)
            invalid.append(doc.id)
    return tuple(products), invalid


async def seed_catalog(store: MemoryDocumentStore, collection: str) -> int:
    """
    Write the demonstration products if the collection is empty.

    Emptiness is checked against the store right before writing, not against
    any mirrored snapshot.

    Returns:
        Number of products written (0 if the collection already had documents).
    """
    if await store.list_documents(collection):
        return 0
    for fields in SEED_PRODUCTS:
        await store.create_document(collection, dict(fields))
    logger.info("Seeded %d products into %s", len(SEED_PRODUCTS), collection)
    return len(SEED_PRODUCTS)


class CatalogMirror:
    """
    Keeps ``products`` in sync with a remote collection.

    Each snapshot replaces the product list wholesale, in delivery order.
    An empty snapshot triggers a seeding attempt. Read failures are reported
    through ``advise`` and leave the last-known products in place. Documents
    that aren't valid products are left out of the list and reported, and
    later snapshots are still applied.
    """

    def __init__(
        self,
        store: MemoryDocumentStore,
        collection: str,
        advise: Callable[[str], None] | None = None,
        seed: bool = True,
    ):
        self.store = store
        self.collection = collection
        self.seed_enabled = seed
        self.products: tuple[Product, ...] = ()
        self.seed_attempts = 0
        self.last_error: StoreError | None = None
        self._by_id: dict[str, Product] = {}
        self._invalid_ids: list[str] = []
        self._advise = advise or (lambda message: None)
        self._listeners: list[Callable[[tuple[Product, ...]], None]] = []
        self._stream: SnapshotStream | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Subscribe and start applying snapshots in the background."""
        if self._stream is not None:
            return
        try:
            self._stream = await self.store.subscribe(self.collection)
        except StoreError as e:
            self._report(e)
            return
        self._task = asyncio.create_task(self._consume(self._stream))

    async def close(self) -> None:
        """Unsubscribe and wait for already-delivered snapshots to be applied."""
        if self._stream is not None:
            self._stream.close()
        if self._task is not None:
            await self._task

    async def settled(self) -> None:
        """Wait until every snapshot delivered so far has been applied."""
        if self._stream is not None and self.running:
            await self._stream.join()

    def add_listener(
        self, listener: Callable[[tuple[Product, ...]], None]
    ) -> Callable[[], None]:
        """Call ``listener`` with the product list after every applied snapshot."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def get(self, product_id: str) -> Product | None:
        return self._by_id.get(product_id)

    def require(self, product_id: str) -> Product:
        """
        Look up a product.

        Raises:
            ProductNotFoundError: If the ID isn't in the current snapshot.
        """
        product = self._by_id.get(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    async def _consume(self, stream: SnapshotStream) -> None:
        try:
            async for snapshot in stream:
                try:
                    self._apply(snapshot)
                    if snapshot.empty and self.seed_enabled:
                        await self._seed()
                finally:
                    stream.task_done()
        except StoreError as e:
            self._report(e)

    def _apply(self, snapshot: Snapshot) -> None:
        products, invalid = parse_products(snapshot.documents)
        # Reported once per distinct set of unreadable documents
        if invalid and invalid != self._invalid_ids:
            self._report(InvalidDocumentError(self.collection, invalid))
        elif not invalid and isinstance(self.last_error, InvalidDocumentError):
            self.last_error = None
        self._invalid_ids = invalid
        self.products = products
        self._by_id = {p.id: p for p in products}
        logger.debug("Catalog snapshot applied: %d products", len(products))
        for listener in list(self._listeners):
            listener(products)

    async def _seed(self) -> None:
        self.seed_attempts += 1
        try:
            await seed_catalog(self.store, self.collection)
        except StoreError as e:
            logger.error("Error adding seed products: %s", e)

    def _report(self, error: StoreError) -> None:
        self.last_error = error
        logger.error("Error fetching products: %s", error)
        if isinstance(error, PermissionDeniedError):
            self._advise(LOAD_DENIED)
        else:
            self._advise(LOAD_FAILED)
