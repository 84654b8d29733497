"""
Shared fixtures for folder conversion tests.

FakeDatabase stands in for Motor's AsyncIOMotorDatabase. It covers the
subset of the collection API the conversion services use: equality and
$in filters, inclusion projections, unique indexes, ordered/unordered
insert_many, $set/$inc updates, and deletes.
"""

import copy
import itertools

import pytest
from pymongo.errors import BulkWriteError, DuplicateKeyError

from services.library_conversion import InMemoryMembershipResolver

DUPLICATE_KEY = 11000
_object_ids = itertools.count(1)


def _matches(doc, query):
    for key, condition in query.items():
        value = doc.get(key)
        if isinstance(condition, dict) and "$in" in condition:
            if value not in condition["$in"]:
                return False
        elif value != condition:
            return False
    return True


def _project(doc, projection):
    doc = copy.deepcopy(doc)
    if not projection:
        return doc
    included = [k for k, v in projection.items() if v and k != "_id"]
    if included:
        result = {k: doc[k] for k in included if k in doc}
        if projection.get("_id", 1) and "_id" in doc:
            result["_id"] = doc["_id"]
        return result
    if projection.get("_id") == 0:
        doc.pop("_id", None)
    return doc


class FakeInsertResult:
    def __init__(self, ids):
        self.inserted_ids = ids
        self.inserted_id = ids[0] if ids else None


class FakeUpdateResult:
    def __init__(self, matched, modified):
        self.matched_count = matched
        self.modified_count = modified


class FakeDeleteResult:
    def __init__(self, deleted):
        self.deleted_count = deleted


class FakeCursor:
    """Async cursor over a snapshot of matching documents."""

    def __init__(self, docs):
        self._docs = docs
        self._limit = None

    def sort(self, key, direction=1):
        self._docs = sorted(self._docs, key=lambda d: d.get(key) or "", reverse=direction < 0)
        return self

    def limit(self, n):
        self._limit = n
        return self

    def _results(self):
        return self._docs[:self._limit] if self._limit else list(self._docs)

    async def to_list(self, length=None):
        docs = self._results()
        return docs[:length] if length else docs

    def __aiter__(self):
        self._iter = iter(self._results())
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """In-memory async collection."""

    def __init__(self, name):
        self.name = name
        self.docs = []
        self.unique_keys = []
        self.rejections = []       # (predicate, code, message)
        self.fail_with = None      # Exception raised by the next write
        self.insert_calls = 0

    # -- test helpers -------------------------------------------------------

    def seed(self, *docs):
        for doc in docs:
            self.docs.append(dict(doc, _id=next(_object_ids)))

    def reject(self, predicate, message="document failed validation", code=121):
        """Make inserts of matching documents fail with a write error."""
        self.rejections.append((predicate, code, message))

    # -- collection API -----------------------------------------------------

    async def create_index(self, keys, unique=False, **kwargs):
        if isinstance(keys, str):
            fields = (keys,)
        else:
            fields = tuple(k for k, _ in keys)
        if unique and fields not in self.unique_keys:
            self.unique_keys.append(fields)
        return "_".join(fields)

    def find(self, query=None, projection=None):
        return FakeCursor([_project(d, projection) for d in self.docs if _matches(d, query or {})])

    async def find_one(self, query=None, projection=None):
        for doc in self.docs:
            if _matches(doc, query or {}):
                return _project(doc, projection)
        return None

    def _write_error(self, doc):
        for predicate, code, message in self.rejections:
            if predicate(doc):
                return code, message
        for fields in self.unique_keys:
            key = tuple(doc.get(f) for f in fields)
            if any(tuple(d.get(f) for f in fields) == key for d in self.docs):
                return DUPLICATE_KEY, f"E11000 duplicate key error collection: {self.name} index: {'_'.join(fields)}"
        return None

    def _raise_pending_failure(self):
        if self.fail_with is not None:
            error, self.fail_with = self.fail_with, None
            raise error

    async def insert_one(self, doc):
        self._raise_pending_failure()
        error = self._write_error(doc)
        if error:
            raise DuplicateKeyError(error[1], code=error[0])
        stored = dict(copy.deepcopy(doc), _id=next(_object_ids))
        self.docs.append(stored)
        return FakeInsertResult([stored["_id"]])

    async def insert_many(self, docs, ordered=True):
        self.insert_calls += 1
        self._raise_pending_failure()
        inserted = []
        write_errors = []
        for index, doc in enumerate(docs):
            error = self._write_error(doc)
            if error:
                write_errors.append({"index": index, "code": error[0], "errmsg": error[1]})
                if ordered:
                    break
                continue
            stored = dict(copy.deepcopy(doc), _id=next(_object_ids))
            self.docs.append(stored)
            inserted.append(stored["_id"])
        if write_errors:
            raise BulkWriteError({"writeErrors": write_errors, "nInserted": len(inserted)})
        return FakeInsertResult(inserted)

    async def update_one(self, query, update, upsert=False):
        self._raise_pending_failure()
        for doc in self.docs:
            if _matches(doc, query):
                before = copy.deepcopy(doc)
                doc.update(update.get("$set", {}))
                for key, amount in update.get("$inc", {}).items():
                    doc[key] = doc.get(key, 0) + amount
                return FakeUpdateResult(1, int(before != doc))
        if upsert:
            self.seed(dict(query, **update.get("$set", {})))
        return FakeUpdateResult(0, 0)

    async def delete_one(self, query):
        for index, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[index]
                return FakeDeleteResult(1)
        return FakeDeleteResult(0)

    async def delete_many(self, query):
        self._raise_pending_failure()
        kept = [doc for doc in self.docs if not _matches(doc, query)]
        deleted = len(self.docs) - len(kept)
        self.docs = kept
        return FakeDeleteResult(deleted)


class FakeDatabase:
    """Attribute-style access to lazily created fake collections."""

    def __init__(self):
        self._collections = {}

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    def __getitem__(self, name):
        return getattr(self, name)


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def resolver():
    return InMemoryMembershipResolver()
