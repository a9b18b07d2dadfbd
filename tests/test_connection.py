"""Tests for connections: loading, row creation, queries and commits."""

import json
import threading

import pytest

import jsdb
from jsdb import Bean, Connection, TypeId
from jsdb.connection import strictest_equals
from jsdb.errors import (
    ConstraintError,
    ForeignKeyConstraintError,
    InvalidArgument,
    JsDbError,
    ParseError,
    PrimaryKeyConstraintError,
    SerializationError,
    StorageError,
    TableNotFound,
    UnknownType,
    UnsupportedComparison,
)
from jsdb.schema import SchemaBuilder
from jsdb.types import TypeDefinition, TypeRegistry


def blog_builder() -> SchemaBuilder:
    return (
        jsdb.build()
        .add_table("users")
        .add_primary_key("id", TypeId.INTEGER, "a")
        .add_field("name", TypeId.STRING, "r")
        .add_table("posts")
        .add_primary_key("id", TypeId.INTEGER, "a")
        .add_foreign_key("authorId", "users", "id", "r")
    )


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "blog.json"
    blog_builder().export_to_file(path)
    return path


@pytest.fixture
def db(db_path):
    return jsdb.connect(db_path)


def read_file(path):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def add_user(db, name):
    user = db.create_row("users").set("name", name)
    db.commit(user)
    return user


class TestLoad:
    """Tests for loading a database file."""

    def test_export_then_load(self, db_path):
        builder = blog_builder()
        conn = jsdb.connect(db_path)

        assert conn.tables == ["users", "posts"]
        assert conn.dump()["data"] == {"users": [], "posts": []}
        for table in builder.tables:
            assert conn.descriptor(table.name).primary_key == table.primary_key.name
            assert conn.count(table.name) == 0

    def test_connect_returns_loaded_connection(self, db_path):
        conn = jsdb.connect(str(db_path))
        assert isinstance(conn, Connection)
        assert conn.path == db_path

    def test_missing_file(self, tmp_path):
        with pytest.raises(StorageError):
            jsdb.connect(tmp_path / "missing.json")

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{]")
        with pytest.raises(ParseError):
            jsdb.connect(path)

    def test_failed_reload_keeps_state(self, db, db_path):
        add_user(db, "Ada")
        db_path.write_text("garbage")
        with pytest.raises(ParseError):
            db.reload()
        assert db.count("users") == 1
        assert db.first("users", lambda b: True).get("name") == "Ada"

    def test_reload_sees_file_changes(self, db, db_path):
        other = jsdb.connect(db_path)
        add_user(other, "Ada")
        assert db.count("users") == 0
        db.load()
        assert db.count("users") == 1

    def test_not_loaded(self, db_path):
        conn = Connection(db_path)
        with pytest.raises(JsDbError):
            conn.count("users")
        conn.load()
        assert conn.count("users") == 0

    def test_unknown_table(self, db):
        with pytest.raises(TableNotFound):
            db.create_row("comments")
        with pytest.raises(TableNotFound):
            db.first("comments", lambda b: True)
        with pytest.raises(TableNotFound):
            db.count("comments")

    def test_custom_type_needs_registry(self, tmp_path):
        class UpperType(TypeDefinition):
            def can_serialize(self, value):
                return isinstance(value, str) and value.isupper()

        registry = TypeRegistry()
        registry.register(UpperType(type_id="Upper"))

        path = tmp_path / "codes.json"
        (
            SchemaBuilder(registry)
            .add_table("codes")
            .add_primary_key("code", "Upper")
            .export_to_file(path)
        )
        with pytest.raises(UnknownType):
            jsdb.connect(path)

        conn = jsdb.connect(path, registry)
        assert conn.registry is registry
        conn.commit(conn.create_row("codes").set("code", "ABC"))
        with pytest.raises(SerializationError):
            conn.commit(conn.create_row("codes").set("code", "abc"))
        assert conn.count("codes") == 1


class TestAutoincrement:
    """Tests for autoincrement allocation."""

    def test_sequential_values_start_at_zero(self, db):
        ids = [db.create_row("users").get("id") for _ in range(5)]
        assert ids == [0, 1, 2, 3, 4]

    def test_counters_are_per_table(self, db):
        assert db.create_row("users").get("id") == 0
        assert db.create_row("posts").get("id") == 0
        assert db.create_row("users").get("id") == 1

    def test_non_autoincrement_fields_unset(self, db):
        post = db.create_row("posts")
        assert post.get("authorId") is None
        assert post.is_new

    def test_counter_survives_reload(self, db, db_path):
        for name in ("Ada", "Grace", "Alan"):
            add_user(db, name)
        assert read_file(db_path)["meta"]["autoincrement"] == {"users§id": 3}

        reloaded = jsdb.connect(db_path)
        assert reloaded.create_row("users").get("id") == 3
        assert reloaded.create_row("users").get("id") == 4

    def test_empty_commit_persists_counter(self, db, db_path):
        db.create_row("users")
        db.create_row("users")
        db.commit()
        assert jsdb.connect(db_path).create_row("users").get("id") == 2

    def test_failed_commit_does_not_reuse_values(self, db):
        bad = db.create_row("posts").set("authorId", 42)
        with pytest.raises(ForeignKeyConstraintError):
            db.commit(bad)
        assert db.create_row("posts").get("id") == 1


class TestQueries:
    """Tests for first() and all()."""

    @pytest.fixture
    def people(self, db):
        for name in ("Ada", "Grace", "Alan", "Barbara"):
            add_user(db, name)
        return db

    def test_first_in_storage_order(self, people):
        bean = people.first("users", lambda b: b.get("name").startswith("A"))
        assert bean.get("name") == "Ada"
        assert bean.get("id") == 0

    def test_first_without_match(self, people):
        assert people.first("users", lambda b: b.get("name") == "Linus") is None

    def test_all_in_storage_order(self, people):
        beans = people.all("users", lambda b: len(b.get("name")) > 3)
        assert [b.get("name") for b in beans] == ["Grace", "Alan", "Barbara"]

    def test_all_without_match(self, people):
        assert people.all("users", lambda b: False) == []

    def test_empty_table(self, db):
        assert db.first("users", lambda b: True) is None
        assert db.all("users", lambda b: True) == []

    @pytest.mark.parametrize("predicate", [None, "name", 42])
    def test_predicate_must_be_callable(self, people, predicate):
        with pytest.raises(InvalidArgument):
            people.first("users", predicate)
        with pytest.raises(InvalidArgument):
            people.all("users", predicate)

    def test_results_are_stored_beans(self, people):
        bean = people.first("users", lambda b: True)
        assert isinstance(bean, Bean)
        assert not bean.is_new

    def test_results_are_copies(self, people):
        bean = people.first("users", lambda b: True)
        bean.set("name", "Changed")
        assert people.first("users", lambda b: True).get("name") == "Ada"


def write_raw(path, fields, rows):
    document = {
        "schema": [{"tableName": "t", "fields": fields}],
        "meta": {},
        "data": {"t": rows},
    }
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


class TestUnusualFiles:
    """Tests for files written by hand or by other tools."""

    def test_field_entry_not_an_object(self, tmp_path):
        path = write_raw(tmp_path / "t.json", ["oops"], [])
        with pytest.raises(JsDbError):
            jsdb.connect(path)

    def test_date_outside_datetime_range(self, tmp_path):
        fields = [
            {"fieldName": "id", "typeId": "Integer", "flags": "cru"},
            {"fieldName": "at", "typeId": "Date", "flags": ""},
        ]
        conn = jsdb.connect(write_raw(tmp_path / "t.json", fields, [[0, 10**18]]))
        with pytest.raises(SerializationError) as exc_info:
            conn.all("t", lambda b: True)
        assert exc_info.value.field == "at"

    def test_whole_number_float_in_integer_field(self, tmp_path):
        fields = [
            {"fieldName": "id", "typeId": "Integer", "flags": "cru"},
            {"fieldName": "n", "typeId": "Integer", "flags": ""},
        ]
        conn = jsdb.connect(write_raw(tmp_path / "t.json", fields, [[0, 5.0]]))
        bean = conn.first("t", lambda b: True)
        assert bean.get("n") == 5
        assert type(bean.get("n")) is int

    def test_huge_integer_in_number_field(self, tmp_path):
        fields = [
            {"fieldName": "id", "typeId": "Integer", "flags": "cru"},
            {"fieldName": "v", "typeId": "Number", "flags": ""},
        ]
        conn = jsdb.connect(write_raw(tmp_path / "t.json", fields, []))
        with pytest.raises(SerializationError):
            conn.commit(conn.create_row("t").set_multiple({"id": 0, "v": 10**400}))
        assert conn.count("t") == 0


class TestCommit:
    """Tests for the commit write path."""

    def test_insert_is_written_to_file(self, db, db_path):
        add_user(db, "Ada")
        assert read_file(db_path)["data"]["users"] == [[0, "Ada"]]
        assert db.count("users") == 1

    def test_commit_several_beans(self, db):
        a = db.create_row("users").set("name", "Ada")
        b = db.create_row("users").set("name", "Grace")
        db.commit(a, b)
        assert [u.get("name") for u in db.all("users", lambda u: True)] == ["Ada", "Grace"]

    def test_update_overwrites_in_place(self, db, db_path):
        add_user(db, "Ada")
        add_user(db, "Grace")
        ada = db.first("users", lambda b: b.get("name") == "Ada")
        ada.set("name", "Ada Lovelace")
        db.commit(ada)

        assert db.count("users") == 2
        assert read_file(db_path)["data"]["users"] == [[0, "Ada Lovelace"], [1, "Grace"]]

    def test_committed_bean_updates_on_second_commit(self, db):
        user = add_user(db, "Ada")
        assert not user.is_new
        user.set("name", "Countess")
        db.commit(user)
        assert db.count("users") == 1
        assert db.first("users", lambda b: True).get("name") == "Countess"

    def test_serialization_error_rolls_back(self, db, db_path):
        before = db_path.read_bytes()
        good = db.create_row("users").set("name", "Ada")
        bad = db.create_row("users")
        with pytest.raises(SerializationError) as exc_info:
            db.commit(good, bad)
        assert exc_info.value.field == "name"
        assert db.count("users") == 0
        assert db_path.read_bytes() == before
        assert good.is_new

    def test_non_bean(self, db):
        with pytest.raises(InvalidArgument):
            db.commit({"id": 0, "name": "Ada"})

    def test_foreign_bean_table(self, db, tmp_path):
        path = tmp_path / "other.json"
        SchemaBuilder().add_table("things").add_primary_key("id", TypeId.INTEGER, "a").export_to_file(path)
        thing = jsdb.connect(path).create_row("things")
        with pytest.raises(TableNotFound):
            db.commit(thing)

    def test_write_failure_rolls_back(self, db, db_path):
        add_user(db, "Ada")
        db_path.unlink()
        db_path.mkdir()
        with pytest.raises(StorageError):
            db.commit(db.create_row("users").set("name", "Grace"))
        assert db.count("users") == 1

    def test_abort_is_logged(self, db, caplog):
        with caplog.at_level("WARNING", logger="jsdb.connection"):
            with pytest.raises(SerializationError):
                db.commit(db.create_row("users"))
        assert "Aborted transaction" in caplog.text

    def test_connection_usable_after_failure(self, db):
        with pytest.raises(ForeignKeyConstraintError):
            db.commit(db.create_row("posts").set("authorId", 7))
        add_user(db, "Ada")
        assert db.count("users") == 1

    def test_concurrent_commits_are_serialized(self, db, db_path):
        def worker():
            for _ in range(10):
                db.commit(db.create_row("users").set("name", "x"))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        ids = [u.get("id") for u in db.all("users", lambda u: True)]
        assert sorted(ids) == list(range(40))
        assert len(read_file(db_path)["data"]["users"]) == 40


class TestConstraints:
    """Tests for primary and foreign key constraints."""

    def test_duplicate_primary_key(self, db):
        add_user(db, "Ada")
        clash = db.create_row("users").set_multiple({"id": 0, "name": "Impostor"})
        with pytest.raises(PrimaryKeyConstraintError) as exc_info:
            db.commit(clash)
        assert isinstance(exc_info.value, ConstraintError)
        assert exc_info.value.table == "users"
        assert exc_info.value.field == "id"
        assert exc_info.value.value == 0
        assert db.count("users") == 1
        assert db.first("users", lambda b: True).get("name") == "Ada"

    def test_duplicate_primary_key_in_one_batch(self, db):
        a = db.create_row("users").set_multiple({"id": 10, "name": "A"})
        b = db.create_row("users").set_multiple({"id": 10, "name": "B"})
        with pytest.raises(PrimaryKeyConstraintError):
            db.commit(a, b)
        assert db.count("users") == 0

    def test_second_unique_key_field(self, tmp_path):
        path = tmp_path / "accounts.json"
        (
            SchemaBuilder()
            .add_table("accounts")
            .add_primary_key("id", TypeId.INTEGER, "a")
            .add_primary_key("email", TypeId.STRING)
            .export_to_file(path)
        )
        conn = jsdb.connect(path)
        conn.commit(conn.create_row("accounts").set("email", "a@example.com"))
        with pytest.raises(PrimaryKeyConstraintError) as exc_info:
            conn.commit(conn.create_row("accounts").set("email", "a@example.com"))
        assert exc_info.value.field == "email"
        assert conn.count("accounts") == 1

    def test_missing_foreign_key_target(self, db):
        add_user(db, "Ada")
        before = db.dump()
        post = db.create_row("posts").set("authorId", 5)
        with pytest.raises(ForeignKeyConstraintError) as exc_info:
            db.commit(post)
        assert exc_info.value.table == "posts"
        assert exc_info.value.field == "authorId"
        assert exc_info.value.value == 5
        assert exc_info.value.target_table == "users"
        assert exc_info.value.target_field == "id"
        assert db.dump()["data"] == before["data"]

    def test_foreign_key_to_row_in_same_batch(self, db):
        user = db.create_row("users").set("name", "Ada")
        post = db.create_row("posts").set("authorId", user.get("id"))
        db.commit(user, post)
        assert db.count("posts") == 1

    def test_foreign_key_type_must_match(self, db):
        add_user(db, "Ada")
        post = db.create_row("posts").set("authorId", "0")
        with pytest.raises(SerializationError):
            db.commit(post)

    def test_optional_foreign_key_may_be_null(self, tmp_path):
        path = tmp_path / "tree.json"
        (
            SchemaBuilder()
            .add_table("nodes")
            .add_primary_key("id", TypeId.INTEGER, "a")
            .add_table("edges")
            .add_primary_key("id", TypeId.INTEGER, "a")
            .add_foreign_key("parent", "nodes", "id")
            .export_to_file(path)
        )
        conn = jsdb.connect(path)
        conn.commit(conn.create_row("edges"))
        assert conn.dump()["data"]["edges"] == [[0, None]]
        with pytest.raises(ForeignKeyConstraintError):
            conn.commit(conn.create_row("edges").set("parent", 3))

    def test_batch_is_atomic(self, db, db_path):
        add_user(db, "Ada")
        before = db.dump()
        file_before = db_path.read_bytes()

        batch = [
            db.create_row("users").set("name", "Grace"),
            db.create_row("posts").set("authorId", 0),
            db.create_row("users").set("name", "Alan"),
            db.create_row("posts").set("authorId", 99),
            db.create_row("users").set("name", "never reached"),
        ]
        with pytest.raises(ForeignKeyConstraintError):
            db.commit(*batch)

        assert db.dump()["data"] == before["data"]
        assert db_path.read_bytes() == file_before
        assert all(bean.is_new for bean in batch)

    def test_update_skips_constraint_checks(self, db, db_path):
        add_user(db, "Ada")
        db.commit(db.create_row("posts").set("authorId", 0))

        post = db.first("posts", lambda b: True)
        post.set("authorId", 99)
        db.commit(post)

        assert db.count("posts") == 1
        assert read_file(db_path)["data"]["posts"] == [[0, 99]]

    def test_non_primitive_key_comparison(self, tmp_path):
        path = tmp_path / "readings.json"
        SchemaBuilder().add_table("readings").add_primary_key("value", TypeId.NUMBER).export_to_file(path)
        conn = jsdb.connect(path)
        conn.commit(conn.create_row("readings").set("value", 1.5))
        with pytest.raises(UnsupportedComparison):
            conn.commit(conn.create_row("readings").set("value", 2.5))
        assert conn.count("readings") == 1


class TestStrictestEquals:
    """Tests for key comparison."""

    def test_equal_values(self):
        assert strictest_equals(1, 1)
        assert strictest_equals("a", "a")
        assert strictest_equals(True, True)

    def test_different_values(self):
        assert not strictest_equals(1, 2)
        assert not strictest_equals("a", "b")
        assert not strictest_equals(True, False)

    def test_no_cross_type_equality(self):
        assert not strictest_equals(1, True)
        assert not strictest_equals(0, False)
        assert not strictest_equals("1", 1)

    @pytest.mark.parametrize("left, right", [(1.0, 1), (None, 1), ([1], [1]), ("a", {"a": 1})])
    def test_unsupported(self, left, right):
        with pytest.raises(UnsupportedComparison):
            strictest_equals(left, right)


class TestBlogScenario:
    """End-to-end users/posts scenario."""

    def test_scenario(self, db, db_path):
        user = db.create_row("users").set("name", "Ada")
        db.commit(user)
        assert user.get("id") == 0

        db.commit(db.create_row("posts").set("authorId", 0))

        orphan = db.create_row("posts").set("authorId", 99)
        with pytest.raises(ForeignKeyConstraintError):
            db.commit(orphan)
        assert db.count("posts") == 1

        reloaded = jsdb.connect(db_path)
        assert reloaded.count("users") == 1
        assert reloaded.count("posts") == 1
        assert reloaded.first("posts", lambda b: True).get("authorId") == 0
