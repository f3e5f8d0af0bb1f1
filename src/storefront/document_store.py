"""Document store with snapshot subscriptions.

A store holds named collections (slash-separated paths such as
``artifacts/<app_id>/public/data/products``) of JSON-compatible documents
keyed by a store-assigned ID. Subscribers receive the full current set of
documents after every change (snapshot-replace, never a diff).
"""

import asyncio
import copy
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from .errors import DocumentNotFoundError, PermissionDeniedError, StoreError
from .models import _generate_id

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


@dataclass(frozen=True)
class Document:
    """A stored document: ID plus a private copy of its fields."""

    id: str
    data: dict[str, Any]


@dataclass(frozen=True)
class Snapshot:
    """Full contents of a collection at one point in time."""

    collection: str
    documents: tuple[Document, ...]

    @property
    def empty(self) -> bool:
        return not self.documents

    def __len__(self) -> int:
        return len(self.documents)


_CLOSED = object()


class SnapshotStream:
    """
    Ordered, cancellable stream of snapshots for one collection.

    Items are delivered in the order they were published. Once ``close()``
    returns, nothing new is enqueued; items enqueued before the close are
    still delivered, then iteration stops.

    A ``StoreError`` pushed by the store is raised from ``__anext__`` and
    ends the stream.
    """

    def __init__(self, collection: str, on_close: Callable[["SnapshotStream"], None]):
        self.collection = collection
        self._on_close = on_close
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, item: Snapshot | StoreError) -> None:
        """Enqueue a snapshot or error. Ignored after close."""
        if self._closed:
            return
        if isinstance(item, StoreError):
            self._detach()
            self._queue.put_nowait(item)
            return
        self._queue.put_nowait(item)

    def close(self) -> None:
        """Unsubscribe. Idempotent."""
        if self._closed:
            return
        self._detach()
        self._queue.put_nowait(_CLOSED)

    def _detach(self) -> None:
        self._closed = True
        self._on_close(self)

    def task_done(self) -> None:
        """Mark the last received item as fully handled by the consumer."""
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every enqueued item has been handled."""
        await self._queue.join()

    def __aiter__(self) -> "SnapshotStream":
        return self

    async def __anext__(self) -> Snapshot:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            self._queue.task_done()
            raise StopAsyncIteration
        if isinstance(item, StoreError):
            self._finished = True
            self._queue.task_done()
            raise item
        return item


class MemoryDocumentStore:
    """
    In-process document store.

    Note: subscriptions only reach subscribers in the same process.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._streams: dict[str, list[SnapshotStream]] = {}

    # --- storage hooks (overridden by JsonDocumentStore) ---

    def _load(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def _save(self, collection: str, documents: dict[str, dict[str, Any]]) -> None:
        self._collections[collection] = documents

    # --- snapshots ---

    def _snapshot(self, collection: str) -> Snapshot:
        documents = self._load(collection)
        return Snapshot(
            collection=collection,
            documents=tuple(
                Document(id=doc_id, data=copy.deepcopy(data))
                for doc_id, data in documents.items()
            ),
        )

    def _publish(self, collection: str) -> None:
        streams = list(self._streams.get(collection, ()))
        if not streams:
            return
        snapshot = self._snapshot(collection)
        for stream in streams:
            stream.push(snapshot)

    def _detach(self, stream: SnapshotStream) -> None:
        streams = self._streams.get(stream.collection, [])
        if stream in streams:
            streams.remove(stream)

    # --- public API ---

    async def subscribe(self, collection: str) -> SnapshotStream:
        """
        Subscribe to a collection.

        The returned stream yields the current snapshot first, then a new
        snapshot after every write to the collection, until closed.
        """
        stream = SnapshotStream(collection, self._detach)
        self._streams.setdefault(collection, []).append(stream)
        try:
            stream.push(self._snapshot(collection))
        except StoreError as e:
            stream.push(e)
        logger.debug("Subscribed to %s", collection)
        return stream

    async def list_documents(self, collection: str) -> list[Document]:
        """Return the current documents of a collection."""
        return list(self._snapshot(collection).documents)

    async def get_document(self, collection: str, doc_id: str) -> Document:
        """
        Get a single document.

        Raises:
            DocumentNotFoundError: If the ID doesn't exist.
        """
        documents = self._load(collection)
        if doc_id not in documents:
            raise DocumentNotFoundError(collection, doc_id)
        return Document(id=doc_id, data=copy.deepcopy(documents[doc_id]))

    async def create_document(self, collection: str, fields: dict[str, Any]) -> str:
        """Create a document and return its assigned ID."""
        doc_id = _generate_id()
        documents = dict(self._load(collection))
        documents[doc_id] = copy.deepcopy(fields)
        self._save(collection, documents)
        logger.debug("Created %s/%s", collection, doc_id)
        self._publish(collection)
        return doc_id

    async def delete_document(self, collection: str, doc_id: str) -> None:
        """
        Delete a document.

        Raises:
            DocumentNotFoundError: If the ID doesn't exist.
        """
        documents = dict(self._load(collection))
        if doc_id not in documents:
            raise DocumentNotFoundError(collection, doc_id)
        del documents[doc_id]
        self._save(collection, documents)
        self._publish(collection)

    def close(self) -> None:
        """Close every open subscription."""
        for streams in list(self._streams.values()):
            for stream in list(streams):
                stream.close()


class JsonDocumentStore(MemoryDocumentStore):
    """
    Document store persisted as one JSON file per collection.

    ``artifacts/app/public/data/products`` lives at
    ``<data_dir>/artifacts/app/public/data/products.json``.
    """

    def __init__(self, data_dir: Path):
        super().__init__()
        self.data_dir = Path(data_dir)

    def collection_path(self, collection: str) -> Path:
        parts = [p for p in collection.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise StoreError(f"Invalid collection path: {collection!r}", collection)
        return self.data_dir.joinpath(*parts[:-1]) / f"{parts[-1]}.json"

    def _load(self, collection: str) -> dict[str, dict[str, Any]]:
        path = self.collection_path(collection)
        try:
            if not path.exists():
                return {}
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except PermissionError as e:
            raise PermissionDeniedError(collection) from e
        except (OSError, ValueError) as e:
            raise StoreError(f"Failed to read {path}: {e}", collection) from e

        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise StoreError(
                f"Unsupported schema version {version} in {path}. "
                f"This tool supports version {SCHEMA_VERSION}.",
                collection,
            )
        return data.get("documents", {})

    def _save(self, collection: str, documents: dict[str, dict[str, Any]]) -> None:
        """Write the collection atomically (temp file, then rename)."""
        path = self.collection_path(collection)
        data = {"schema_version": SCHEMA_VERSION, "documents": documents}
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=path.parent, prefix=f".{path.stem}_", suffix=".tmp"
            )
        except PermissionError as e:
            raise PermissionDeniedError(collection) from e
        except OSError as e:
            raise StoreError(f"Failed to write {path}: {e}", collection) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(temp_path, path)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise StoreError(f"Failed to write {path}: {e}", collection) from e


def create_store(backend: str, data_dir: Path | None = None) -> MemoryDocumentStore:
    """Create a document store for a backend name ("memory" or "json")."""
    if backend == "memory":
        return MemoryDocumentStore()
    if backend == "json":
        if data_dir is None:
            raise ValueError("json backend requires a data_dir")
        return JsonDocumentStore(data_dir)
    raise ValueError(f"Unknown backend: {backend}")
