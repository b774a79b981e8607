"""FastAPI routes for the pin registry, resolution and audit API."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse

from .audit.types import Revision
from .models import (
    ChangeDocumentResponse,
    CreateDistributionRequest,
    CreatePackageRequest,
    CreateRevisionRequest,
    DependencyModel,
    DistributionListResponse,
    DistributionModel,
    ExpandResponse,
    PackageListResponse,
    PackageModel,
    PathListResponse,
    PathModel,
    PinChangeListResponse,
    PinChangeModel,
    PinModel,
    RegisterPathRequest,
    ResolveResponse,
    RevisionListResponse,
    RevisionModel,
    SetDependenciesRequest,
    UpsertPinRequest,
    UpsertPinResponse,
)
from .paths.parser import parse_axis
from .pins.registry import RegistrySnapshot, UnknownVersionPin
from .pins.types import Context, Distribution, VersionPin
from .resolver.resolver import SearchMode
from .service import Edit, PinService

logger = logging.getLogger(__name__)

router = APIRouter()

# Configuration - will be set during app startup
_service: PinService | None = None


def configure(service: PinService) -> None:
    """Configure the routes with the service they serve."""
    global _service
    _service = service


def _get_service() -> PinService:
    """Get the service, raising if not configured."""
    if _service is None:
        raise HTTPException(status_code=503, detail="Pin service not initialized")
    return _service


def _pin_to_model(pin: VersionPin, snapshot: RegistrySnapshot) -> PinModel:
    """Convert a VersionPin to its Pydantic model."""
    coord = pin.coordinate
    return PinModel(
        id=pin.pin_id,
        package=pin.package,
        distribution=pin.distribution.name,
        role=str(coord.role),
        level=str(coord.level),
        site=str(coord.site),
        platform=str(coord.platform),
        withs=snapshot.dependency_names(pin.pin_id),
    )


def _distribution_to_model(dist: Distribution) -> DistributionModel:
    return DistributionModel(id=dist.distribution_id, package=dist.package, version=dist.version_str, name=dist.name)


def _revision_to_model(revision: Revision) -> RevisionModel:
    return RevisionModel(**revision.to_dict())


def _context_to_dict(context: Context) -> dict[str, str]:
    return {axis.value: str(path) for axis, path in context.paths().items()}


@contextmanager
def _audited(service: PinService, author: str | None, comment: str | None) -> Iterator[Edit]:
    """An edit scope when author or comment is given, a plain transaction otherwise."""
    if author is None and comment is None:
        with service.registry.transaction() as transaction_id:
            yield Edit(author="", comment="", transaction_id=transaction_id)
        return
    with service.edit(author or "", comment or "") as edit:
        yield edit


# =============================================================================
# Paths, packages and distributions
# =============================================================================

@router.get("/paths/{axis}", response_model=PathListResponse, tags=["Registry"])
async def list_paths(axis: str):
    """List every registered path on one axis."""
    service = _get_service()
    parsed = parse_axis(axis)
    paths = [str(p) for p in service.hierarchy.all_paths(parsed)]
    return PathListResponse(axis=parsed.value, paths=paths, count=len(paths))


@router.post("/paths/{axis}", response_model=PathModel, status_code=201, tags=["Registry"])
async def register_path(axis: str, request: RegisterPathRequest):
    """
    Register an axis path and all of its ancestors.

    Registering an existing path is not an error.
    """
    service = _get_service()
    path = service.register_path(axis, request.path)
    return PathModel(axis=path.axis.value, path=str(path))


@router.get("/packages", response_model=PackageListResponse, tags=["Registry"])
async def list_packages():
    packages = _get_service().registry.packages()
    return PackageListResponse(packages=packages, count=len(packages))


@router.post("/packages", response_model=PackageModel, status_code=201, tags=["Registry"])
async def create_package(request: CreatePackageRequest):
    name = _get_service().create_package(request.name)
    return PackageModel(name=name)


@router.get("/distributions", response_model=DistributionListResponse, tags=["Registry"])
async def list_distributions(package: Optional[str] = Query(None, description="Only this package")):
    dists = _get_service().registry.distributions(package)
    return DistributionListResponse(
        distributions=[_distribution_to_model(d) for d in dists],
        count=len(dists),
    )


@router.post("/distributions", response_model=DistributionModel, status_code=201, tags=["Registry"])
async def create_distribution(request: CreateDistributionRequest):
    dist = _get_service().create_distribution(request.package, request.version)
    return _distribution_to_model(dist)


@router.get("/export", tags=["Registry"])
async def export_registry():
    """Export the registry in the definition file format."""
    return _get_service().export()


# =============================================================================
# Version pins
# =============================================================================

@router.put("/pins", response_model=UpsertPinResponse, tags=["Pins"])
async def upsert_pin(request: UpsertPinRequest):
    """
    Create or update the version pin at a coordinate.

    When `withs` is given the dependency list is replaced in the same
    transaction. With author and comment the change is recorded as a revision.
    """
    service = _get_service()
    with _audited(service, request.author, request.comment) as edit:
        pin = service.upsert_pin(
            request.distribution,
            role=request.role,
            level=request.level,
            site=request.site,
            platform=request.platform,
            package=request.package,
        )
        if request.withs is not None:
            service.set_dependencies(pin.pin_id, request.withs)

    return UpsertPinResponse(
        pin=_pin_to_model(pin, service.registry.snapshot()),
        transaction_id=edit.transaction_id,
        revision_id=edit.revision.revision_id if edit.revision else None,
    )


@router.get("/pins/{pin_id}", response_model=PinModel, tags=["Pins"])
async def get_pin(pin_id: int):
    service = _get_service()
    snapshot = service.registry.snapshot()
    pin = snapshot.pin(pin_id)
    if pin is None:
        raise UnknownVersionPin(f"No version pin with id {pin_id}")
    return _pin_to_model(pin, snapshot)


@router.put("/pins/{pin_id}/dependencies", response_model=PinModel, tags=["Pins"])
async def set_dependencies(pin_id: int, request: SetDependenciesRequest):
    """Replace a pin's ordered dependency list."""
    service = _get_service()
    with _audited(service, request.author, request.comment):
        service.set_dependencies(pin_id, request.packages)
    snapshot = service.registry.snapshot()
    return _pin_to_model(snapshot.pin(pin_id), snapshot)


# =============================================================================
# Resolution
# =============================================================================

@router.get("/resolve/{package}", response_model=ResolveResponse, tags=["Resolution"])
async def resolve(
    package: str,
    role: Optional[str] = Query(None),
    level: Optional[str] = Query(None),
    site: Optional[str] = Query(None),
    platform: Optional[str] = Query(None),
    mode: str = Query("ancestor", description="ancestor, exact or descendant"),
):
    """
    Resolve the version pin of a package in a context.

    Ancestor and exact modes return the single matching pin; descendant mode
    returns every pin at or below the context, most specific first.
    """
    service = _get_service()
    search_mode = SearchMode.parse(mode)
    context = Context.parse(role=role, level=level, site=site, platform=platform)
    snapshot = service.registry.snapshot()
    result = service.resolver.resolve_context(package, context, search_mode, snapshot)

    response = ResolveResponse(package=package, mode=search_mode.value, context=_context_to_dict(context))
    if search_mode is SearchMode.DESCENDANT:
        response.pins = [_pin_to_model(p, snapshot) for p in result]
        return response

    if result is None:
        return JSONResponse(
            status_code=404,
            content={"error": "No matching pin", "detail": f"No pin for {package} at {context}"},
        )
    response.pin = _pin_to_model(result, snapshot)
    return response


@router.get("/expand/{package}", response_model=ExpandResponse, tags=["Resolution"])
async def expand(
    package: str,
    role: Optional[str] = Query(None),
    level: Optional[str] = Query(None),
    site: Optional[str] = Query(None),
    platform: Optional[str] = Query(None),
):
    """Resolve a package and each of its dependencies under the same context."""
    service = _get_service()
    context = Context.parse(role=role, level=level, site=site, platform=platform)
    snapshot = service.registry.snapshot()
    expansion = service.expander.expand_package(package, context, snapshot)
    if expansion is None:
        return JSONResponse(
            status_code=404,
            content={"error": "No matching pin", "detail": f"No pin for {package} at {context}"},
        )

    return ExpandResponse(
        package=expansion.root.package,
        context=_context_to_dict(context),
        pin=_pin_to_model(expansion.root, snapshot),
        dependencies=[
            DependencyModel(
                package=d.package,
                found=d.found,
                pin=_pin_to_model(d.pin, snapshot) if d.pin else None,
            )
            for d in expansion.dependencies
        ],
        missing=expansion.missing,
    )


# =============================================================================
# Audit
# =============================================================================

@router.get("/changes/{transaction_id}", response_model=ChangeDocumentResponse, tags=["Audit"])
async def get_changes(transaction_id: int):
    """Materialize the change document of one transaction."""
    document = _get_service().change_document(transaction_id)
    return ChangeDocumentResponse(**document.to_dict())


@router.get("/changes/{transaction_id}/pins", response_model=PinChangeListResponse, tags=["Audit"])
async def get_pin_changes(transaction_id: int):
    """List the version pin changes of one transaction by coordinate and distribution name."""
    changes = _get_service().pin_changes(transaction_id)
    return PinChangeListResponse(
        transaction_id=transaction_id,
        changes=[PinChangeModel(**c.to_dict()) for c in changes],
        count=len(changes),
    )


@router.get("/revisions", response_model=RevisionListResponse, tags=["Audit"])
async def find_revisions(
    author: Optional[str] = Query(None),
    transaction_id: Optional[int] = Query(None),
    order_by: str = Query("id", description="id, author, created_at or transaction_id"),
    descending: bool = Query(False),
    limit: Optional[int] = Query(None, ge=1),
):
    service = _get_service()
    try:
        revisions = service.engine.find_revisions(
            author=author,
            transaction_id=transaction_id,
            order_by=order_by,
            descending=descending,
            limit=limit,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return RevisionListResponse(
        revisions=[_revision_to_model(r) for r in revisions],
        count=len(revisions),
    )


@router.post("/revisions", response_model=RevisionModel, status_code=201, tags=["Audit"])
async def create_revision(request: CreateRevisionRequest):
    """Record a revision for a transaction that already happened."""
    revision = _get_service().create_revision(request.transaction_id, request.author, request.comment)
    logger.info(f"Revision {revision.revision_id} recorded for transaction {request.transaction_id}")
    return _revision_to_model(revision)


@router.get("/revisions/{revision_id}", response_model=RevisionModel, tags=["Audit"])
async def get_revision(revision_id: int):
    revision = _get_service().engine.get_revision(revision_id)
    if revision is None:
        raise HTTPException(status_code=404, detail=f"Revision not found: {revision_id}")
    return _revision_to_model(revision)
