"""Tests for rebuilding change documents from the audit feed."""

import logging

from packpin_svc.audit.engine import UNKNOWN_TABLE
from packpin_svc.audit.types import AuditEvent
from packpin_svc.pins.types import Coordinate


def _event(event_id, transaction_id, table, action, row=None, changed=None):
    return AuditEvent(
        event_id=event_id,
        transaction_id=transaction_id,
        table_name=table,
        action=action,
        row_data=row,
        changed_fields=changed,
    )


class TestMaterialize:
    def test_two_updates_on_one_table(self, feed, engine):
        a1 = {"id": 1, "coord": 10, "distribution": 100}
        a2 = {"id": 2, "coord": 20, "distribution": 200}
        c1 = {"distribution": 101}
        c2 = {"distribution": 201}
        feed.append(_event(1, 7, "versionpin", "UPDATE", a1, c1))
        feed.append(_event(2, 7, "versionpin", "UPDATE", a2, c2))

        document = engine.materialize_change_document(7)
        assert document.transaction_id == 7
        assert document.changes == {
            "versionpin": {"UPDATE": [{"from": a1, "to": c1}, {"from": a2, "to": c2}]}
        }

    def test_empty_transaction(self, engine):
        document = engine.materialize_change_document(42)
        assert document.is_empty
        assert document.to_dict() == {"transaction_id": 42, "changes": {}}

    def test_insert_and_delete_lists(self, feed, engine):
        feed.append(_event(1, 3, "withpackage", "DELETE", {"id": 1, "package": "b"}))
        feed.append(_event(2, 3, "withpackage", "DELETE", {"id": 2, "package": "c"}))
        feed.append(_event(3, 3, "withpackage", "INSERT", {"id": 3, "package": "c"}))

        document = engine.materialize_change_document(3)
        assert document.changes == {
            "withpackage": {
                "DELETE": [{"id": 1, "package": "b"}, {"id": 2, "package": "c"}],
                "INSERT": [{"id": 3, "package": "c"}],
            }
        }

    def test_multiple_tables(self, feed, engine):
        feed.append(_event(1, 5, "pincoord", "INSERT", {"id": 1}))
        feed.append(_event(2, 5, "versionpin", "INSERT", {"id": 1, "coord": 1}))
        document = engine.materialize_change_document(5)
        assert document.tables == ["pincoord", "versionpin"]

    def test_other_transactions_excluded(self, feed, engine):
        feed.append(_event(1, 1, "package", "INSERT", {"name": "maya"}))
        feed.append(_event(2, 2, "package", "INSERT", {"name": "vray"}))
        assert engine.materialize_change_document(2).changes == {"package": {"INSERT": [{"name": "vray"}]}}

    def test_action_tags_case_insensitive(self, feed, engine):
        feed.append(_event(1, 4, "package", "insert", {"name": "maya"}))
        feed.append(_event(2, 4, "package", "Insert", {"name": "vray"}))
        assert engine.materialize_change_document(4).changes == {
            "package": {"INSERT": [{"name": "maya"}, {"name": "vray"}]}
        }

    def test_unknown_action_has_null_payload(self, feed, engine):
        feed.append(_event(1, 9, "versionpin", "truncate"))
        assert engine.materialize_change_document(9).changes == {"versionpin": {"TRUNCATE": None}}

    def test_malformed_rows_degrade_to_none(self, feed, engine, caplog):
        feed.append(_event(1, 6, "versionpin", "UPDATE", {"id": 1}, None))
        feed.append(_event(2, 6, "versionpin", "UPDATE", {"id": 2}, {"distribution": 3}))
        feed.append(_event(3, 6, "package", "INSERT", None))

        with caplog.at_level(logging.WARNING):
            document = engine.materialize_change_document(6)

        assert document.changes == {
            "versionpin": {"UPDATE": [None, {"from": {"id": 2}, "to": {"distribution": 3}}]},
            "package": {"INSERT": [None]},
        }
        assert "missing an image" in caplog.text

    def test_event_without_table_is_filed_as_unknown(self, feed, engine, caplog):
        feed.append(_event(1, 12, None, "INSERT", {"name": "maya"}))
        feed.append(_event(2, 12, "", "update", {"id": 1}, {"distribution": 2}))
        feed.append(_event(3, 12, "package", "INSERT", {"name": "vray"}))

        with caplog.at_level(logging.WARNING):
            document = engine.materialize_change_document(12)

        assert document.changes == {
            UNKNOWN_TABLE: {"INSERT": [None], "UPDATE": [None]},
            "package": {"INSERT": [{"name": "vray"}]},
        }
        assert "has no table name" in caplog.text

    def test_document_is_a_copy(self, feed, engine):
        feed.append(_event(1, 8, "package", "INSERT", {"name": "maya"}))
        document = engine.materialize_change_document(8)
        document.changes["package"]["INSERT"][0]["name"] = "changed"
        assert engine.materialize_change_document(8).changes["package"]["INSERT"][0]["name"] == "maya"


class TestRegistryEvents:
    def test_pin_update_document(self, studio, feed, engine):
        registry = studio["registry"]
        pin = studio["pins"]["bayou"]
        new_dist = studio["dists"]["maya-2020.1"]

        with registry.transaction() as transaction_id:
            registry.upsert_version_pin(pin.coordinate, new_dist)

        document = engine.materialize_change_document(transaction_id)
        assert document.changes == {
            "versionpin": {
                "UPDATE": [{
                    "from": {"id": pin.pin_id, "coord": pin.coord_id, "distribution": pin.distribution.distribution_id},
                    "to": {"distribution": new_dist.distribution_id},
                }]
            }
        }

    def test_pin_create_document(self, studio, feed, engine):
        registry = studio["registry"]
        registry.hierarchy.register("level", "gator")
        with registry.transaction() as transaction_id:
            pin = registry.upsert_version_pin(Coordinate.build("maya", level="gator"), "maya-2019")

        changes = engine.materialize_change_document(transaction_id).changes
        assert changes["pincoord"]["INSERT"] == [{
            "id": pin.coord_id,
            "role": "any",
            "level": "facility.gator",
            "site": "any",
            "platform": "any",
            "package": "maya",
        }]
        assert changes["versionpin"]["INSERT"] == [pin.to_row()]

    def test_dependency_replace_document(self, studio, engine):
        registry = studio["registry"]
        pin = studio["pins"]["root"]
        registry.set_dependencies(pin.pin_id, ["vray", "houdini"])

        with registry.transaction() as transaction_id:
            registry.set_dependencies(pin.pin_id, ["houdini"])

        changes = engine.materialize_change_document(transaction_id).changes["withpackage"]
        assert [(r["package"], r["pinorder"]) for r in changes["DELETE"]] == [("vray", 0), ("houdini", 1)]
        assert [(r["package"], r["pinorder"]) for r in changes["INSERT"]] == [("houdini", 0)]
        assert {r["versionpin"] for r in changes["DELETE"] + changes["INSERT"]} == {pin.pin_id}

    def test_transaction_groups_writes(self, registry, engine):
        with registry.transaction() as transaction_id:
            registry.hierarchy.register("level", "bayou")
            registry.create_package("maya")
            registry.create_distribution("maya", "2019")

        document = engine.materialize_change_document(transaction_id)
        assert document.tables == ["distribution", "level", "package"]
        assert engine.transactions() == [transaction_id]

    def test_each_write_is_its_own_transaction(self, registry, engine):
        registry.create_package("maya")
        registry.create_package("vray")
        assert len(engine.transactions()) == 2


class TestPinChanges:
    def test_update_names_coordinate_and_distributions(self, studio, engine):
        registry = studio["registry"]
        pin = studio["pins"]["root"]

        with registry.transaction() as transaction_id:
            registry.upsert_version_pin(pin.coordinate, "maya-2019")

        changes = engine.pin_changes(transaction_id)
        assert [c.to_dict() for c in changes] == [{
            "event_id": changes[0].event_id,
            "transaction_id": transaction_id,
            "action": "UPDATE",
            "level": "facility",
            "role": "any",
            "platform": "any",
            "site": "any",
            "package": "maya",
            "old": "maya-2018.sp3",
            "new": "maya-2019",
        }]

    def test_new_pin_has_no_old_distribution(self, studio, engine):
        registry = studio["registry"]
        with registry.transaction() as transaction_id:
            registry.upsert_version_pin(Coordinate.build("houdini", role="fx", site="portland"), "houdini-17.5")

        [change] = engine.pin_changes(transaction_id)
        assert change.action == "INSERT"
        assert (change.role, change.site, change.package) == ("any.fx", "any.portland", "houdini")
        assert change.old is None
        assert change.new == "houdini-17.5"

    def test_one_entry_per_pin_in_order(self, studio, engine):
        registry = studio["registry"]
        with registry.transaction() as transaction_id:
            registry.upsert_version_pin(studio["pins"]["bayou"].coordinate, "maya-2020.1")
            registry.create_package("nuke")
            registry.upsert_version_pin(studio["pins"]["root"].coordinate, "maya-2019")

        changes = engine.pin_changes(transaction_id)
        assert [(c.level, c.old, c.new) for c in changes] == [
            ("facility.bayou", "maya-2019", "maya-2020.1"),
            ("facility", "maya-2018.sp3", "maya-2019"),
        ]

    def test_transaction_without_pin_changes(self, studio, engine):
        registry = studio["registry"]
        with registry.transaction() as transaction_id:
            registry.create_package("nuke")
        assert engine.pin_changes(transaction_id) == []
        assert engine.pin_changes(999) == []

    def test_missing_reference_rows_degrade_to_none(self, feed, engine, caplog):
        feed.append(_event(1, 4, "versionpin", "UPDATE", {"id": 1, "coord": 7, "distribution": 2}, {"distribution": 3}))

        with caplog.at_level(logging.WARNING):
            [change] = engine.pin_changes(4)

        assert (change.package, change.level, change.old, change.new) == (None, None, None, None)
        assert "missing from the feed" in caplog.text
