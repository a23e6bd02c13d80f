import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

import bson
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from blog_backend.db import (
    AuthorSnapshot,
    InMemoryPostStore,
    InMemoryUserStore,
    MongoPostStore,
    MongoUserStore,
    UserRecord,
)
from blog_backend.errors import StorageError, ValidationError


class InMemoryUserStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryUserStore()

    def test_create_and_find(self):
        user = self.store.create(
            UserRecord(username="alice", password_hash="h", first_name="Alice")
        )
        self.assertIsNotNone(user.id)
        found = self.store.find_by_username("alice")
        self.assertEqual(found.id, user.id)
        self.assertEqual(self.store.count_by_username("alice"), 1)
        self.assertEqual(self.store.count_by_username("bob"), 0)
        self.assertIsNone(self.store.find_by_username("bob"))

    def test_create_requires_username_and_hash(self):
        with self.assertRaises(ValidationError):
            self.store.create(UserRecord(username="", password_hash="h"))
        with self.assertRaises(ValidationError):
            self.store.create(UserRecord(username="alice", password_hash=""))
        self.assertEqual(self.store.list_all(), [])

    def test_api_repr_hides_hash(self):
        user = self.store.create(UserRecord(username="alice", password_hash="h"))
        self.assertNotIn("h", user.api_repr().values())


class InMemoryPostStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryPostStore()
        self.author = AuthorSnapshot(first_name="Alice", last_name="Zhu")

    def test_partial_update(self):
        post = self.store.create(self.author, "Hello", "World")
        updated = self.store.update(post.id, {"title": "Hi"})
        self.assertEqual(updated.title, "Hi")
        self.assertEqual(updated.content, "World")
        self.assertEqual(updated.created, post.created)
        self.assertEqual(updated.author, self.author)

    def test_update_clears_content_with_none(self):
        post = self.store.create(self.author, "Hello", "World")
        updated = self.store.update(post.id, {"content": None})
        self.assertIsNone(updated.content)
        self.assertEqual(updated.title, "Hello")

    def test_update_rejects_unknown_or_empty_fields(self):
        post = self.store.create(self.author, "Hello")
        with self.assertRaises(ValidationError):
            self.store.update(post.id, {"author": "Mallory"})
        with self.assertRaises(ValidationError):
            self.store.update(post.id, {"title": None})
        self.assertEqual(self.store.find_by_id(post.id).title, "Hello")

    def test_created_has_millisecond_precision(self):
        post = self.store.create(self.author, "Hello")
        self.assertEqual(post.created.microsecond % 1000, 0)

    def test_missing_ids(self):
        self.assertIsNone(self.store.find_by_id("nope"))
        self.assertIsNone(self.store.update("nope", {"title": "x"}))
        self.assertFalse(self.store.delete("nope"))

    def test_delete(self):
        post = self.store.create(self.author, "Hello")
        self.assertTrue(self.store.delete(post.id))
        self.assertIsNone(self.store.find_by_id(post.id))
        self.assertEqual(self.store.find_all(), [])

    def test_returned_records_are_copies(self):
        post = self.store.create(self.author, "Hello")
        post.title = "changed outside"
        self.assertEqual(self.store.find_by_id(post.id).title, "Hello")

    def test_author_name(self):
        self.assertEqual(AuthorSnapshot("Alice", "").full_name, "Alice")
        self.assertEqual(AuthorSnapshot("", "Zhu").full_name, "Zhu")
        post = self.store.create(self.author, "Hello")
        self.assertEqual(post.api_repr()["author"], "Alice Zhu")


class MongoUserStoreTests(unittest.TestCase):
    """
    Exercises the pymongo store against a mocked collection.
    """

    def setUp(self):
        self.database = MagicMock()
        self.collection = self.database.__getitem__.return_value
        self.store = MongoUserStore(self.database)

    def test_creates_unique_username_index(self):
        self.database.__getitem__.assert_called_with("users")
        args, kwargs = self.collection.create_index.call_args
        self.assertEqual(args[0][0][0], "username")
        self.assertTrue(kwargs["unique"])

    def test_create_inserts_document(self):
        oid = ObjectId()
        self.collection.insert_one.return_value.inserted_id = oid
        user = self.store.create(
            UserRecord(
                username="alice", password_hash="h", first_name="A", last_name="Z"
            )
        )
        self.assertEqual(user.id, str(oid))
        self.collection.insert_one.assert_called_once_with(
            {"username": "alice", "password": "h", "firstName": "A", "lastName": "Z"}
        )

    def test_duplicate_key_is_validation_error(self):
        self.collection.insert_one.side_effect = DuplicateKeyError("dup")
        with self.assertRaises(ValidationError):
            self.store.create(UserRecord(username="alice", password_hash="h"))

    def test_find_by_username_maps_document(self):
        oid = ObjectId()
        self.collection.find_one.return_value = {
            "_id": oid,
            "username": "alice",
            "password": "h",
            "firstName": "Alice",
            "lastName": "Zhu",
        }
        user = self.store.find_by_username("alice")
        self.assertEqual(user.id, str(oid))
        self.assertEqual(user.password_hash, "h")
        self.collection.find_one.assert_called_once_with({"username": "alice"})

    def test_driver_failure_is_storage_error(self):
        self.collection.count_documents.side_effect = ServerSelectionTimeoutError(
            "no servers"
        )
        with self.assertRaises(StorageError):
            self.store.count_by_username("alice")


class MongoPostStoreTests(unittest.TestCase):
    def setUp(self):
        self.database = MagicMock()
        self.collection = self.database.__getitem__.return_value
        self.store = MongoPostStore(self.database)
        self.created = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _doc(self, oid, **overrides):
        doc = {
            "_id": oid,
            "author": {"firstName": "Alice", "lastName": "Zhu"},
            "title": "Hello",
            "content": "World",
            "created": self.created,
        }
        doc.update(overrides)
        return doc

    def test_create_stores_author_snapshot(self):
        oid = ObjectId()
        self.collection.insert_one.return_value.inserted_id = oid
        post = self.store.create(AuthorSnapshot("Alice", "Zhu"), "Hello", "World")
        self.assertEqual(post.id, str(oid))
        doc = self.collection.insert_one.call_args[0][0]
        self.assertEqual(doc["author"], {"firstName": "Alice", "lastName": "Zhu"})
        self.assertEqual(doc["title"], "Hello")
        self.assertIn("created", doc)

    def test_update_sets_only_given_fields(self):
        oid = ObjectId()
        self.collection.find_one_and_update.return_value = self._doc(oid, title="Hi")
        post = self.store.update(str(oid), {"title": "Hi"})
        self.assertEqual(post.title, "Hi")
        self.assertEqual(post.content, "World")
        self.assertEqual(post.created, self.created)
        self.collection.find_one_and_update.assert_called_once_with(
            {"_id": oid},
            {"$set": {"title": "Hi"}},
            return_document=ReturnDocument.AFTER,
        )

    def test_created_survives_bson_round_trip(self):
        oid = ObjectId()
        stored = {}

        def insert_one(doc):
            stored["raw"] = bson.encode({**doc, "_id": oid})
            return MagicMock(inserted_id=oid)

        def find_one_and_update(query, update, return_document):
            doc = bson.decode(stored["raw"])
            doc.update(update["$set"])
            stored["raw"] = bson.encode(doc)
            return doc

        self.collection.insert_one.side_effect = insert_one
        self.collection.find_one_and_update.side_effect = find_one_and_update

        created = self.store.create(AuthorSnapshot("Alice", "Zhu"), "Hello", "World")
        updated = self.store.update(created.id, {"title": "Hi"})
        self.assertEqual(updated.created, created.created)
        self.assertEqual(updated.title, "Hi")
        self.assertEqual(updated.content, "World")

    def test_update_with_null_content_unsets_value(self):
        oid = ObjectId()
        self.collection.find_one_and_update.return_value = self._doc(
            oid, content=None
        )
        post = self.store.update(str(oid), {"content": None})
        self.assertIsNone(post.content)
        self.collection.find_one_and_update.assert_called_once_with(
            {"_id": oid},
            {"$set": {"content": None}},
            return_document=ReturnDocument.AFTER,
        )

    def test_malformed_ids_are_not_found(self):
        self.assertIsNone(self.store.find_by_id("not-an-object-id"))
        self.assertIsNone(self.store.update("not-an-object-id", {"title": "x"}))
        self.assertFalse(self.store.delete("not-an-object-id"))
        self.collection.find_one.assert_not_called()
        self.collection.delete_one.assert_not_called()

    def test_delete_reports_missing(self):
        self.collection.delete_one.return_value.deleted_count = 0
        self.assertFalse(self.store.delete(str(ObjectId())))
        self.collection.delete_one.return_value.deleted_count = 1
        self.assertTrue(self.store.delete(str(ObjectId())))

    def test_find_all_maps_author_name(self):
        self.collection.find.return_value = [
            self._doc(ObjectId(), author={"firstName": "Alice", "lastName": None})
        ]
        posts = self.store.find_all()
        self.assertEqual(posts[0].author_name, "Alice")


if __name__ == "__main__":
    unittest.main()
