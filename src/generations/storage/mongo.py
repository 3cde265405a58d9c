"""
MongoDB storage backend built on pymongo.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional

from bson.codec_options import CodecOptions
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from ..core.errors import DuplicateRecordError
from .base import DocumentStore, SortSpec

logger = logging.getLogger(__name__)


class MongoStore(DocumentStore):
    """
    Document store backed by a MongoDB database.

    Datetimes are decoded timezone-aware so stored diff timestamps compare
    equal to the values that were written. Transactions need a replica set;
    when ``use_transactions`` is False, ``transaction()`` groups nothing.
    A transaction is bound to the thread that opened it; other threads
    sharing the store keep running outside it.
    """

    def __init__(self, database: Database, use_transactions: bool = False):
        self.database = database
        self.use_transactions = use_transactions
        self._codec_options = CodecOptions(tz_aware=True)
        # Each thread sees only the transaction it opened itself
        self._local = threading.local()

    @property
    def _session(self):
        return getattr(self._local, "session", None)

    @classmethod
    def from_config(cls, config) -> MongoStore:
        """Connect using a ``GenerationsConfig``."""
        client = MongoClient(config.mongo_url, tz_aware=True)
        logger.info(f"Connected to MongoDB database {config.database}")
        return cls(client[config.database], use_transactions=config.use_transactions)

    def _collection(self, dataset: str):
        return self.database.get_collection(dataset, codec_options=self._codec_options)

    def insert_one(self, dataset: str, document: Mapping[str, Any]) -> None:
        try:
            self._collection(dataset).insert_one(dict(document), session=self._session)
        except DuplicateKeyError as e:
            raise DuplicateRecordError(dataset, e.details.get("keyValue") if e.details else None) from e

    def find_one(self, dataset: str, filter: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        return self._collection(dataset).find_one(dict(filter), session=self._session)

    def find(
        self,
        dataset: str,
        filter: Mapping[str, Any],
        sort: Optional[SortSpec] = None,
        batch_size: int = 0,
    ) -> Iterator[Dict[str, Any]]:
        cursor = self._collection(dataset).find(dict(filter), session=self._session)
        if sort:
            cursor = cursor.sort(list(sort))
        if batch_size > 0:
            cursor = cursor.batch_size(batch_size)
        return cursor

    def update_one(
        self,
        dataset: str,
        filter: Mapping[str, Any],
        replacement: Mapping[str, Any],
    ) -> bool:
        result = self._collection(dataset).replace_one(dict(filter), dict(replacement), session=self._session)
        return result.matched_count > 0

    def create_index(self, dataset: str, keys: List[str], unique: bool = False) -> None:
        self._collection(dataset).create_index([(key, ASCENDING) for key in keys], unique=unique)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if not self.use_transactions or self._session is not None:
            yield
            return

        with self.database.client.start_session() as session:
            with session.start_transaction():
                self._local.session = session
                try:
                    yield
                finally:
                    self._local.session = None
