"""Example usage of the jsdb library."""

from pathlib import Path

import jsdb
from jsdb import TypeId

db_path = Path("./example_data.json")

# Define the schema and write an empty database file
(
    jsdb.build()
    .add_table("users")
    .add_primary_key("id", TypeId.INTEGER, "a")
    .add_field("name", TypeId.STRING, "r")
    .add_field("age", TypeId.INTEGER)
    .add_table("posts")
    .add_primary_key("id", TypeId.INTEGER, "a")
    .add_foreign_key("authorId", "users", "id", "r")
    .add_field("title", TypeId.STRING, "r")
    .export_to_file(db_path)
)

db = jsdb.connect(db_path)

people = [("Alice", 30), ("Bob", 25), ("Charlie", 35), ("Diana", 28), ("Eve", 22)]

print("Creating users...")
users = [db.create_row("users").set_multiple({"name": n, "age": a}) for n, a in people]
db.commit(*users)
for user in users:
    print(f"  Created: {user}")

alice = db.first("users", lambda b: b.get("name") == "Alice")
db.commit(db.create_row("posts").set_multiple({"authorId": alice.get("id"), "title": "Hello"}))

print("\nUsers aged 28 or more:")
for user in db.all("users", lambda b: b.get("age") >= 28):
    print(f"  [{user.get('id')}] {user.get('name')}, age {user.get('age')}")

print("\nCommitting a post by a missing user...")
try:
    db.commit(db.create_row("posts").set_multiple({"authorId": 99, "title": "Orphan"}))
except jsdb.ConstraintError as e:
    print(f"  Rejected: {e}")
print(f"  posts still holds {db.count('posts')} row(s)")

print(f"\nDatabase written to {db_path} ({db_path.stat().st_size} bytes)")
