"""Tests for the pin registry write path and its invariants."""

import threading

import pytest

from packpin_svc.paths.parser import MalformedPath
from packpin_svc.pins.registry import (
    DuplicateDependency,
    DuplicateDistribution,
    DuplicatePackage,
    MalformedDistribution,
    PackageMismatch,
    PinRegistry,
    UnknownDistribution,
    UnknownPackage,
    UnknownPath,
    UnknownVersionPin,
    parse_distribution_name,
    parse_version,
)
from packpin_svc.pins.types import Coordinate


class TestPackages:
    def test_create_package(self, registry):
        assert registry.create_package("Maya") == "maya"
        assert registry.has_package("maya")
        assert registry.packages() == ["maya"]

    def test_duplicate_package(self, registry):
        registry.create_package("maya")
        with pytest.raises(DuplicatePackage):
            registry.create_package("MAYA")

    def test_package_name_is_single_label(self, registry):
        with pytest.raises(MalformedPath):
            registry.create_package("maya.plugins")
        with pytest.raises(MalformedPath):
            registry.create_package("")


class TestDistributions:
    def test_create_distribution(self, registry):
        registry.create_package("maya")
        dist = registry.create_distribution("maya", "2018.sp3")
        assert dist.version == ("2018", "sp3")
        assert dist.name == "maya-2018.sp3"
        assert registry.get_distribution(dist.distribution_id) == dist

    def test_dash_separated_version(self, registry):
        registry.create_package("maya")
        dist = registry.create_distribution("maya", "2018-sp3")
        assert registry.find_distribution("maya", "2018.sp3") == dist

    def test_unknown_package(self, registry):
        with pytest.raises(UnknownPackage):
            registry.create_distribution("nuke", "11")

    def test_malformed_version(self, registry):
        registry.create_package("maya")
        with pytest.raises(MalformedDistribution):
            registry.create_distribution("maya", "")
        with pytest.raises(MalformedDistribution):
            registry.create_distribution("maya", "2018..1")

    def test_duplicate_distribution(self, registry):
        registry.create_package("maya")
        registry.create_distribution("maya", "2019")
        with pytest.raises(DuplicateDistribution):
            registry.create_distribution("maya", "2019")

    def test_distributions_listing(self, registry):
        registry.create_package("maya")
        registry.create_package("houdini")
        registry.create_distribution("maya", "2019")
        registry.create_distribution("houdini", "17.5")
        registry.create_distribution("maya", "2018")
        assert [d.name for d in registry.distributions()] == ["houdini-17.5", "maya-2019", "maya-2018"]
        assert [d.name for d in registry.distributions("maya")] == ["maya-2019", "maya-2018"]

    def test_parse_distribution_name(self):
        assert parse_distribution_name("maya-2018.sp3") == ("maya", ("2018", "sp3"))
        with pytest.raises(MalformedDistribution):
            parse_distribution_name("maya")

    def test_parse_version_sequence(self):
        assert parse_version(["2018", "SP3"]) == ("2018", "sp3")


class TestUpsertVersionPin:
    def test_create(self, studio):
        pin = studio["pins"]["bayou"]
        assert pin.package == "maya"
        assert pin.distribution.name == "maya-2019"
        assert str(pin.coordinate.level) == "facility.bayou"
        assert str(pin.coordinate.role) == "any"

    def test_update_keeps_pin_identity(self, studio):
        registry = studio["registry"]
        pin = studio["pins"]["bayou"]
        updated = registry.upsert_version_pin(pin.coordinate, studio["dists"]["maya-2020.1"])
        assert updated.pin_id == pin.pin_id
        assert updated.coord_id == pin.coord_id
        assert updated.distribution.name == "maya-2020.1"
        assert registry.find_pin(pin.coordinate) == updated

    def test_update_by_distribution_name(self, studio):
        registry = studio["registry"]
        pin = studio["pins"]["root"]
        updated = registry.upsert_version_pin(pin.coordinate, "maya-2019")
        assert updated.distribution == studio["dists"]["maya-2019"]

    def test_update_version_pin_by_id(self, studio):
        registry = studio["registry"]
        pin = studio["pins"]["root"]
        updated = registry.update_version_pin(pin.pin_id, studio["dists"]["maya-2019"].distribution_id)
        assert updated.pin_id == pin.pin_id
        assert registry.get_pin(pin.pin_id).distribution.name == "maya-2019"

    def test_update_version_pin_unknown_id(self, studio):
        with pytest.raises(UnknownVersionPin):
            studio["registry"].update_version_pin(999, "maya-2019")

    def test_mismatch_on_create(self, studio):
        registry = studio["registry"]
        before = registry.count()
        with pytest.raises(PackageMismatch):
            registry.upsert_version_pin(Coordinate.build("maya", level="bayou.rd"), studio["dists"]["houdini-17.5"])
        assert registry.count() == before
        assert registry.find_pin(Coordinate.build("maya", level="bayou.rd")) is None

    def test_mismatch_on_update_leaves_pin_unchanged(self, studio):
        registry = studio["registry"]
        pin = studio["pins"]["bayou"]
        with pytest.raises(PackageMismatch):
            registry.upsert_version_pin(pin.coordinate, studio["dists"]["vray-4.0"])
        assert registry.find_pin(pin.coordinate) == pin

    def test_mismatch_emits_no_event(self, studio, feed):
        registry = studio["registry"]
        count = len(feed)
        with pytest.raises(PackageMismatch):
            registry.upsert_version_pin(studio["pins"]["bayou"].coordinate, studio["dists"]["vray-4.0"])
        assert len(feed) == count

    def test_unregistered_path(self, studio):
        with pytest.raises(UnknownPath):
            studio["registry"].upsert_version_pin(Coordinate.build("maya", level="gator"), "maya-2019")

    def test_unknown_package(self, studio):
        studio["registry"].hierarchy.register("level", "gator")
        with pytest.raises(UnknownPackage):
            studio["registry"].upsert_version_pin(Coordinate.build("nuke", level="gator"), "maya-2019")

    def test_unknown_distribution(self, studio):
        with pytest.raises(UnknownDistribution):
            studio["registry"].upsert_version_pin(Coordinate.build("maya"), "maya-2099")
        with pytest.raises(UnknownDistribution):
            studio["registry"].upsert_version_pin(Coordinate.build("maya"), 999)

    def test_same_distribution_is_noop(self, studio, feed):
        registry = studio["registry"]
        pin = studio["pins"]["bayou"]
        count = len(feed)
        assert registry.upsert_version_pin(pin.coordinate, pin.distribution) == pin
        assert len(feed) == count

    def test_concurrent_upserts_create_one_pin(self, studio):
        registry = studio["registry"]
        registry.hierarchy.register("level", "gator")
        coordinate = Coordinate.build("maya", level="gator")
        results = []

        def upsert(dist_name):
            results.append(registry.upsert_version_pin(coordinate, dist_name))

        threads = [
            threading.Thread(target=upsert, args=(name,))
            for name in ("maya-2018.sp3", "maya-2019", "maya-2020.1") * 4
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len({p.pin_id for p in results}) == 1
        assert registry.find_pin(coordinate).pin_id == results[0].pin_id


class TestDependencies:
    def test_set_dependencies(self, studio):
        registry = studio["registry"]
        pin = studio["pins"]["root"]
        deps = registry.set_dependencies(pin.pin_id, ["vray", "Houdini"])
        assert [(d.package, d.position) for d in deps] == [("vray", 0), ("houdini", 1)]
        assert registry.dependencies(pin.pin_id) == ["vray", "houdini"]

    def test_full_replace(self, studio):
        registry = studio["registry"]
        pin = studio["pins"]["root"]
        registry.set_dependencies(pin.pin_id, ["vray", "houdini"])
        registry.set_dependencies(pin.pin_id, ["houdini"])
        assert registry.dependencies(pin.pin_id) == ["houdini"]

    def test_clear(self, studio):
        registry = studio["registry"]
        pin = studio["pins"]["root"]
        registry.set_dependencies(pin.pin_id, ["vray"])
        registry.set_dependencies(pin.pin_id, [])
        assert registry.dependencies(pin.pin_id) == []

    def test_unchanged_list_publishes_nothing(self, studio, feed):
        registry = studio["registry"]
        pin = studio["pins"]["root"]
        registry.set_dependencies(pin.pin_id, ["vray", "houdini"])
        snapshot = registry.snapshot()
        events = len(feed)

        deps = registry.set_dependencies(pin.pin_id, ["VRAY", "houdini"])

        assert [d.package for d in deps] == ["vray", "houdini"]
        assert registry.snapshot() is snapshot
        assert len(feed) == events

    def test_duplicate_dependency(self, studio):
        registry = studio["registry"]
        pin = studio["pins"]["root"]
        with pytest.raises(DuplicateDependency):
            registry.set_dependencies(pin.pin_id, ["vray", "VRAY"])
        assert registry.dependencies(pin.pin_id) == []

    def test_unknown_dependency_package(self, studio):
        registry = studio["registry"]
        pin = studio["pins"]["root"]
        registry.set_dependencies(pin.pin_id, ["vray"])
        with pytest.raises(UnknownPackage):
            registry.set_dependencies(pin.pin_id, ["houdini", "nuke"])
        assert registry.dependencies(pin.pin_id) == ["vray"]

    def test_unknown_pin(self, studio):
        with pytest.raises(UnknownVersionPin):
            studio["registry"].set_dependencies(999, ["vray"])
        with pytest.raises(UnknownVersionPin):
            studio["registry"].dependencies(999)

    def test_dependencies_survive_distribution_update(self, studio):
        registry = studio["registry"]
        pin = studio["pins"]["bayou"]
        registry.set_dependencies(pin.pin_id, ["vray"])
        registry.upsert_version_pin(pin.coordinate, "maya-2020.1")
        assert registry.dependencies(pin.pin_id) == ["vray"]


class TestSnapshots:
    def test_snapshot_is_stable_across_writes(self, studio):
        registry = studio["registry"]
        snapshot = registry.snapshot()
        pin = studio["pins"]["bayou"]
        registry.upsert_version_pin(pin.coordinate, "maya-2020.1")
        assert snapshot.pins[pin.coordinate].distribution.name == "maya-2019"
        assert registry.snapshot().pins[pin.coordinate].distribution.name == "maya-2020.1"
        assert registry.snapshot().version > snapshot.version

    def test_registry_without_feed(self):
        registry = PinRegistry()
        registry.create_package("maya")
        dist = registry.create_distribution("maya", "2019")
        pin = registry.upsert_version_pin(Coordinate.build("maya"), dist)
        assert registry.get_pin(pin.pin_id) == pin
