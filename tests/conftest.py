"""Shared test fixtures for the pin service tests."""

import pytest

from packpin_svc.audit.engine import AuditRevisionEngine
from packpin_svc.audit.feed import AuditFeed
from packpin_svc.config import Config
from packpin_svc.paths.registry import PathHierarchy
from packpin_svc.pins.registry import PinRegistry
from packpin_svc.pins.types import Coordinate
from packpin_svc.resolver.expander import DependencyExpander
from packpin_svc.resolver.resolver import Resolver
from packpin_svc.service import PinService


# =============================================================================
# Component Fixtures
# =============================================================================

@pytest.fixture
def feed() -> AuditFeed:
    return AuditFeed()


@pytest.fixture
def hierarchy(feed) -> PathHierarchy:
    return PathHierarchy(feed)


@pytest.fixture
def registry(hierarchy, feed) -> PinRegistry:
    return PinRegistry(hierarchy, feed)


@pytest.fixture
def resolver(registry) -> Resolver:
    return Resolver(registry)


@pytest.fixture
def expander(resolver) -> DependencyExpander:
    return DependencyExpander(resolver)


@pytest.fixture
def engine(feed) -> AuditRevisionEngine:
    return AuditRevisionEngine(feed)


# =============================================================================
# Populated Registry Fixtures
# =============================================================================

@pytest.fixture
def studio(registry):
    """
    A small studio registry.

    Levels:     facility.bayou, facility.bayou.rd, facility.bayou.rd.9999
    Roles:      any.model, any.model.beta, any.fx
    Sites:      any.portland
    Platforms:  any.cent7_64

    Pins:
        maya-2018.sp3   at the root
        maya-2019       at level bayou
        maya-2020.1     at level bayou.rd, role model
        houdini-17.5    at the root
        vray-4.0        at the root
    """
    hierarchy = registry.hierarchy
    hierarchy.register("level", "bayou.rd.9999")
    hierarchy.register("role", "model.beta")
    hierarchy.register("role", "fx")
    hierarchy.register("site", "portland")
    hierarchy.register("platform", "cent7_64")

    for name in ("maya", "houdini", "vray"):
        registry.create_package(name)

    dists = {
        "maya-2018.sp3": registry.create_distribution("maya", "2018.sp3"),
        "maya-2019": registry.create_distribution("maya", "2019"),
        "maya-2020.1": registry.create_distribution("maya", "2020.1"),
        "houdini-17.5": registry.create_distribution("houdini", "17.5"),
        "vray-4.0": registry.create_distribution("vray", "4.0"),
    }

    pins = {
        "root": registry.upsert_version_pin(Coordinate.build("maya"), dists["maya-2018.sp3"]),
        "bayou": registry.upsert_version_pin(Coordinate.build("maya", level="bayou"), dists["maya-2019"]),
        "bayou_rd_model": registry.upsert_version_pin(
            Coordinate.build("maya", level="bayou.rd", role="model"), dists["maya-2020.1"]
        ),
        "houdini": registry.upsert_version_pin(Coordinate.build("houdini"), dists["houdini-17.5"]),
        "vray": registry.upsert_version_pin(Coordinate.build("vray"), dists["vray-4.0"]),
    }
    return {"registry": registry, "dists": dists, "pins": pins}


@pytest.fixture
def service() -> PinService:
    return PinService.create(Config())


@pytest.fixture
def registry_definition() -> dict:
    """Registry definition in the loader format."""
    return {
        "paths": {
            "role": ["model.beta", "fx"],
            "level": ["bayou.rd"],
            "site": ["portland"],
            "platform": ["cent7_64"],
        },
        "packages": ["maya", "houdini", "vray", "redshift"],
        "distributions": {
            "maya": ["2018.sp3", "2019"],
            "houdini": ["17.5"],
            "vray": ["4.0"],
            "redshift": ["3.0"],
        },
        "pins": [
            {"distribution": "maya-2018.sp3", "withs": ["vray", "redshift"]},
            {"distribution": "maya-2019", "level": "bayou", "withs": ["vray"]},
            {"distribution": "houdini-17.5", "role": "fx", "site": "portland"},
            {"distribution": "vray-4.0"},
            {"distribution": "redshift-3.0", "level": "bayou.rd"},
        ],
    }
