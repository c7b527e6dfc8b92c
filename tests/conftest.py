"""
Shared pytest fixtures for docspine tests.

This module provides:
- An in-memory fake pymongo client (see ``fakes.py``)
- An open :class:`Connection` wired to that client
- Registered collections for the sample record types

Usage:
    def test_something(people):
        alice = people.new(name="Alice")
        alice.save()
"""

import os
from pathlib import Path

import pytest

from docspine import Connection, OdmSettings
from docspine.settings import clear_settings_cache
from fakes import FakeMongoClient
from sample_models import Node, Person, Team, Ticket, User


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their file name."""
    for item in items:
        name = Path(item.fspath).name
        if name.startswith("test_scenarios") or name.startswith("test_integration"):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Keep DOCSPINE_* variables from the environment out of the tests."""
    for key in list(os.environ):
        if key.startswith("DOCSPINE_"):
            monkeypatch.delenv(key)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> OdmSettings:
    return OdmSettings(database_hosts=["fake-1:27017", "fake-2:27017"], database_name="docspine_test")


@pytest.fixture
def fake_client() -> FakeMongoClient:
    return FakeMongoClient()


@pytest.fixture
def connection(settings, fake_client):
    conn = Connection(settings, client_factory=lambda **kwargs: fake_client)
    conn.open()
    yield conn
    conn.close()


@pytest.fixture
def people(connection):
    return connection.register_type(Person, "people")


@pytest.fixture
def teams(connection, people):
    return connection.register_type(Team, "teams")


@pytest.fixture
def users(connection):
    return connection.register_type(User, "users")


@pytest.fixture
def tickets(connection, people):
    return connection.register_type(
        Ticket,
        "tickets",
        relations={"assignee": "Person", "watchers": {"target": "Person", "kind": "1n"}},
    )


@pytest.fixture
def nodes(connection):
    return connection.register_type(Node, "nodes")


@pytest.fixture
def people_store(fake_client, settings):
    """The fake driver collection behind ``people``."""
    return fake_client[settings.database_name]["people"]
