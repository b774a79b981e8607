"""Core service layer - wires the path hierarchy, registry, resolver and audit engine.

Flow:
1. Administrators register axis paths, packages and distributions
2. Version pins bind a coordinate to a distribution, optionally with a
   dependency list
3. Clients resolve a package in a context and expand its dependencies
4. Every write lands in the audit feed; curated edits become revisions
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

from .audit.engine import AuditRevisionEngine
from .audit.feed import AuditFeed
from .audit.store import InvalidRevision, RevisionStore
from .audit.types import ChangeDocument, PinChange, Revision
from .config import Config
from .paths.registry import PathHierarchy
from .paths.types import Axis, LabelPath
from .pins.loader import RegistryLoader
from .pins.registry import PinRegistry
from .pins.serializer import registry_to_dict, save_registry_to_yaml
from .pins.types import Context, Coordinate, Dependency, Distribution, VersionPin
from .resolver.expander import DependencyExpander, Expansion
from .resolver.resolver import Resolver, SearchMode
from .storage.db import DatabaseManager
from .storage.repository import StateRepository

logger = logging.getLogger(__name__)


@dataclass
class Edit:
    """Handle for an edit scope; revision is set when the scope commits changes."""
    author: str
    comment: str
    transaction_id: int | None = None
    revision: Revision | None = None


@dataclass
class PinService:
    """
    Package version pin service.

    Responsibilities:
    - Register axis paths, packages and distributions
    - Upsert version pins and their dependency lists
    - Resolve pins by context and expand dependencies
    - Materialize change documents and keep revisions
    """
    feed: AuditFeed
    hierarchy: PathHierarchy
    registry: PinRegistry
    resolver: Resolver
    expander: DependencyExpander
    engine: AuditRevisionEngine
    config: Config
    database: DatabaseManager | None = None
    repository: StateRepository | None = None

    @classmethod
    def create(cls, config: Config | None = None) -> PinService:
        """Build a service; with a configured database, reload what it holds."""
        config = config or Config()

        database = DatabaseManager(config.storage.database) if config.storage.database else None
        repository = StateRepository(database.connect()) if database is not None else None

        feed = AuditFeed(repository)
        # A disabled audit leaves the registry without a feed to write to
        registry_feed = feed if config.audit.enabled else None
        hierarchy = PathHierarchy(registry_feed, repository)
        registry = PinRegistry(hierarchy, registry_feed, repository)
        resolver = Resolver(registry)
        service = cls(
            feed=feed,
            hierarchy=hierarchy,
            registry=registry,
            resolver=resolver,
            expander=DependencyExpander(resolver),
            engine=AuditRevisionEngine(feed, RevisionStore(repository)),
            config=config,
            database=database,
            repository=repository,
        )
        if repository is not None:
            service._restore(repository)
        return service

    def _restore(self, repository: StateRepository) -> None:
        paths = self.hierarchy.restore(repository.load_paths())
        self.registry.restore(repository.load_registry())
        events = self.feed.restore(repository.load_events())
        revisions = self.engine.store.restore(repository.load_revisions())
        logger.info(
            f"Restored {paths} paths, {self.registry.count()['pins']} pins, "
            f"{events} audit events and {revisions} revisions from {self.config.storage.database}"
        )

    @classmethod
    def from_config(cls, config: Config) -> PinService:
        """
        Build a service and load the configured definition file, if any.

        A definition file only seeds an empty store; once a database holds a
        registry, the database wins.
        """
        service = cls.create(config)

        definition_file = config.registry.definition_file
        if not definition_file:
            return service

        if service.repository is not None and not service.repository.is_empty():
            logger.info(f"Database already holds a registry; {definition_file} not loaded")
            return service

        if not Path(definition_file).exists():
            if config.registry.strict:
                raise FileNotFoundError(f"Registry file not found: {definition_file}")
            logger.warning(f"Registry file not found: {definition_file}, starting empty")
            return service

        author = config.audit.bootstrap_author
        if author:
            with service.edit(author, config.audit.bootstrap_comment):
                service.load_file(definition_file)
        else:
            service.load_file(definition_file)
        return service

    # =========================================================================
    # Edits
    # =========================================================================

    @contextmanager
    def edit(self, author: str, comment: str) -> Iterator[Edit]:
        """
        Run a group of writes as one transaction and record a revision for it.

        No revision is stored when the block changed nothing or when the
        audit feed is disabled.

        Raises:
            InvalidRevision: If author or comment is empty (before any write)
        """
        if not author or not author.strip():
            raise InvalidRevision("Revision author is required")
        if not comment or not comment.strip():
            raise InvalidRevision("Revision comment is required")

        edit = Edit(author=author, comment=comment)
        with self.registry.transaction() as transaction_id:
            edit.transaction_id = transaction_id
            yield edit

        if transaction_id is None:
            return
        document = self.engine.materialize_change_document(transaction_id)
        if document.is_empty:
            logger.debug(f"Edit by {author} changed nothing; no revision stored")
            return
        revision_id = self.engine.create_revision(author, comment, document)
        edit.revision = self.engine.get_revision(revision_id)

    # =========================================================================
    # Writes
    # =========================================================================

    def register_path(self, axis: Axis | str, path: str) -> LabelPath:
        return self.hierarchy.register(axis, path)

    def create_package(self, name: str) -> str:
        return self.registry.create_package(name)

    def create_distribution(self, package: str, version: str) -> Distribution:
        return self.registry.create_distribution(package, version)

    def upsert_pin(
        self,
        distribution: Distribution | int | str,
        role: str | None = None,
        level: str | None = None,
        site: str | None = None,
        platform: str | None = None,
        package: str | None = None,
    ) -> VersionPin:
        """
        Upsert a pin from raw axis values.

        The package defaults to the distribution's own package.
        """
        dist = self.registry.resolve_distribution(distribution)
        coordinate = Coordinate.build(package or dist.package, role, level, site, platform)
        return self.registry.upsert_version_pin(coordinate, dist)

    def set_dependencies(self, pin_id: int, names: Sequence[str]) -> list[Dependency]:
        return self.registry.set_dependencies(pin_id, names)

    # =========================================================================
    # Reads
    # =========================================================================

    def resolve(
        self,
        package: str,
        role: str | None = None,
        level: str | None = None,
        site: str | None = None,
        platform: str | None = None,
        mode: SearchMode | str = SearchMode.ANCESTOR,
    ) -> VersionPin | list[VersionPin] | None:
        return self.resolver.resolve(package, role, level, site, platform, mode)

    def expand(
        self,
        package: str,
        role: str | None = None,
        level: str | None = None,
        site: str | None = None,
        platform: str | None = None,
    ) -> Expansion | None:
        context = Context.parse(role=role, level=level, site=site, platform=platform)
        return self.expander.expand_package(package, context)

    # =========================================================================
    # Audit
    # =========================================================================

    def change_document(self, transaction_id: int) -> ChangeDocument:
        return self.engine.materialize_change_document(transaction_id)

    def pin_changes(self, transaction_id: int) -> list[PinChange]:
        return self.engine.pin_changes(transaction_id)

    def create_revision(self, transaction_id: int, author: str, comment: str) -> Revision:
        """Store a revision for a transaction that already happened."""
        return self.engine.revise(transaction_id, author, comment)

    # =========================================================================
    # Import/export
    # =========================================================================

    def load_file(self, path: str | Path) -> dict[str, int]:
        return RegistryLoader(self.registry).load_file(path)

    def load_dict(self, data: dict) -> dict[str, int]:
        return RegistryLoader(self.registry).load_dict(data)

    def export(self) -> dict:
        """The registry in the definition file format."""
        return registry_to_dict(self.registry)

    def save(self, path: str | Path) -> None:
        save_registry_to_yaml(self.registry, path)
        logger.info(f"Saved registry to {path}")

    def stats(self) -> dict[str, object]:
        return {
            "paths": self.hierarchy.count(),
            **self.registry.count(),
            "revisions": self.engine.store.count(),
            "audit_events": len(self.feed),
        }

    def close(self) -> None:
        """Close the database, if any."""
        if self.database is not None:
            self.database.close()
            logger.info(f"Closed database {self.database.db_path}")
