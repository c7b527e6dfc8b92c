#!/usr/bin/env python3
"""docspine Basics - Registering record types, saving and populating.

This example walks through the whole lifecycle against a running MongoDB:
register two record types, save an embedded payload, save a small
org chart of related people and read it back with populated relations.

Connection settings come from DOCSPINE_* environment variables
(DOCSPINE_DATABASE_HOSTS, DOCSPINE_DATABASE_NAME, ...).

Run: python examples/basic_usage.py
"""
from __future__ import annotations

from dataclasses import dataclass, field

from bson import ObjectId

from docspine import Document, NotFoundError, RelationKind, connect, get_settings, relation
from docspine.logging import configure_from_settings
from docspine.schema import DB_NAME_KEY


@dataclass
class Address:
    city: str = ""
    postal_code: str = ""
    country: str = ""


@dataclass
class User(Document):
    first_name: str = field(default="", metadata={DB_NAME_KEY: "name"})
    last_name: str = ""
    address: Address | None = None


@dataclass
class Person(Document):
    name: str = ""
    manager: Person | ObjectId | None = relation("Person")
    reports: list[Person | ObjectId] = relation("Person", RelationKind.ONE_TO_MANY)


def main():
    settings = get_settings()
    configure_from_settings(settings)

    print("=" * 60)
    print("docspine Basics")
    print("=" * 60)

    with connect(settings) as connection:
        users = connection.register_type(User, "users")
        people = connection.register_type(Person, "people")

        # === 1. Save a record with an embedded payload ===
        print("\n[1] Embedded payload")
        user = users.new(first_name="Max", last_name="Mustermann", address=Address(city="Berlin"))
        user.save()
        print(f"  Saved user {user.id} at {user.created_at:%Y-%m-%d %H:%M:%S}")

        loaded = users.find_by_id(user.id).exec()
        print(f"  Read back: {loaded.first_name} {loaded.last_name} from {loaded.address.city}")

        # === 2. Save related records ===
        print("\n[2] Relations")
        boss = people.new(name="Ada")
        boss.save()

        grace = people.new(name="Grace", manager=boss)
        grace.save()
        linus = people.new(name="Linus", manager=boss)
        linus.save()

        boss.reports = [grace, linus]
        boss.save()
        print(f"  {boss.name} manages {[p.name for p in boss.reports]}")

        # === 3. Query with and without population ===
        print("\n[3] Population")
        plain = people.find_by_id(grace.id).exec()
        print(f"  Without populate, manager is a reference: {plain.manager!r}")

        populated = people.find_by_id(grace.id).populate("manager").exec()
        print(f"  With populate, manager is a record: {populated.manager.name}")
        print(f"  One level only, manager.reports: {populated.manager.reports}")

        team = people.find({"manager": boss.id}).sort("name").exec()
        print(f"  Reports of {boss.name}: {[p.name for p in team]} ({people.find().count()} people total)")

        # === 4. Missing records ===
        print("\n[4] Not found")
        try:
            people.find_by_id(ObjectId()).exec()
        except NotFoundError as e:
            print(f"  {e.message} in {e.context.collection}")

    print("\n" + "=" * 60)
    print("Done")
    print("=" * 60)


if __name__ == "__main__":
    main()
