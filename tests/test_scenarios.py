"""
End-to-end scenarios against the in-memory store.

Each test drives the public API the way an application would: register
record types, save graphs of related records, query them back and
populate their relations.
"""

import pytest
from bson import ObjectId

from docspine import DuplicateError, NotFoundError
from docspine.errors import UnsavedRelationError
from sample_models import Person


class TestSaveLifecycle:
    def test_first_save_assigns_identity_once(self, people):
        record = people.new(name="Fresh")
        record.save()

        assert record.id is not None
        assert record.created_at == record.updated_at
        first_id, created_at, first_update = record.id, record.created_at, record.updated_at

        record.name = "Renamed"
        record.save()

        assert record.id == first_id
        assert record.created_at == created_at
        assert record.updated_at >= first_update
        assert people.find().count() == 1


class TestManagerAndReports:
    """Person with a one-to-one Manager and a one-to-many Reports relation."""

    def test_manager_reference_and_population(self, people, people_store):
        manager = people.new(name="M")
        manager.save()
        id_m = manager.id

        employee = people.new(name="E", manager=manager)
        employee.save()

        assert people_store.raw(employee.id)["manager"] == id_m
        assert employee.manager is manager

        e2 = Person()
        people.find_by_id(employee.id).populate("manager").exec(e2)

        assert isinstance(e2.manager, Person)
        assert e2.manager.id == id_m
        assert e2.manager.is_bound
        assert e2.is_bound

    def test_reports_keep_objects_and_order(self, people, people_store):
        children = []
        for name in ("R1", "R2", "R3"):
            child = people.new(name=name)
            child.save()
            children.append(child)

        boss = people.new(name="Boss", reports=list(children))
        boss.save()

        assert all(a is b for a, b in zip(boss.reports, children))
        assert people_store.raw(boss.id)["reports"] == [c.id for c in children]

    def test_empty_reports_are_stored_and_populated_as_empty(self, people, people_store):
        employee = people.new(name="E", reports=[])
        employee.save()

        assert people_store.raw(employee.id)["reports"] == []

        loaded = people.find_by_id(employee.id).populate("reports").exec()
        assert loaded.reports == []

    def test_population_is_one_level(self, people):
        top = people.new(name="Top")
        top.save()
        middle = people.new(name="Middle", manager=top)
        middle.save()
        bottom = people.new(name="Bottom", manager=middle)
        bottom.save()

        loaded = people.find_by_id(bottom.id).populate("manager").exec()

        assert loaded.manager.name == "Middle"
        assert loaded.manager.manager == top.id
        assert loaded.reports == []


class TestFailures:
    def test_unsaved_manager_is_not_written(self, people, people_store):
        employee = people.new(name="E", manager=Person(name="Unsaved"))

        with pytest.raises(UnsavedRelationError):
            employee.save()

        assert people_store.documents == []
        assert employee.id is None

    def test_find_by_unknown_id_leaves_record_untouched(self, people):
        people.new(name="Someone").save()
        record = Person(name="untouched")

        with pytest.raises(NotFoundError):
            people.find_by_id(ObjectId()).exec(record)

        assert not record.is_bound
        assert record.name == "untouched"
        assert record.id is None

    def test_unique_collision(self, people):
        people.ensure_index("email", unique=True)
        people.new(name="A", email="dup@example.com").save()

        with pytest.raises(DuplicateError):
            people.new(name="B", email="dup@example.com").save()


class TestTeamsWithAutosave:
    def test_graph_saved_in_one_call(self, teams, people):
        team = teams.new(
            title="Platform",
            lead=Person(name="Lead"),
            members=[Person(name="Dev 1"), Person(name="Dev 2")],
        )
        team.save()

        assert people.find().count() == 3
        loaded = teams.find_by_id(team.id).populate("lead", "members").exec()
        assert loaded.lead.name == "Lead"
        assert [m.name for m in loaded.members] == ["Dev 1", "Dev 2"]
