"""
Pydantic models for the pin API.

Provides request/response models for the registry, resolution and audit endpoints.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Registry
# =============================================================================

class RegisterPathRequest(BaseModel):
    """Request model for registering an axis path."""
    path: str = Field(..., description="Label path, with or without the axis root (e.g. 'bayou.rd')")


class PathModel(BaseModel):
    axis: str
    path: str


class PathListResponse(BaseModel):
    axis: str
    paths: List[str]
    count: int


class CreatePackageRequest(BaseModel):
    name: str = Field(..., description="Package name (a single label)")


class PackageModel(BaseModel):
    name: str


class PackageListResponse(BaseModel):
    packages: List[str]
    count: int


class CreateDistributionRequest(BaseModel):
    """Request model for creating a distribution."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"package": "maya", "version": "2018.sp3"}}
    )

    package: str = Field(..., description="Existing package name")
    version: str = Field(..., description="Version label path, '.' or '-' separated")


class DistributionModel(BaseModel):
    id: int
    package: str
    version: str
    name: str = Field(..., description="Display name, e.g. maya-2018.sp3")


class DistributionListResponse(BaseModel):
    distributions: List[DistributionModel]
    count: int


class UpsertPinRequest(BaseModel):
    """
    Request model for creating or updating a version pin.

    Axes left out default to their root. When author and comment are both
    given, the write is recorded as a revision.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "distribution": "maya-2018.sp3",
                "level": "bayou",
                "role": "model",
                "author": "jdoe",
                "comment": "pin maya for bayou modelers",
            }
        }
    )

    distribution: str = Field(..., description="Distribution name, e.g. maya-2018.sp3")
    package: Optional[str] = Field(None, description="Coordinate package; defaults to the distribution's")
    role: Optional[str] = None
    level: Optional[str] = None
    site: Optional[str] = None
    platform: Optional[str] = None
    withs: Optional[List[str]] = Field(None, description="Replace the pin's dependency list")
    author: Optional[str] = None
    comment: Optional[str] = None


class SetDependenciesRequest(BaseModel):
    packages: List[str] = Field(..., description="Ordered dependency package names")
    author: Optional[str] = None
    comment: Optional[str] = None


class PinModel(BaseModel):
    """Version pin representation for API responses."""
    id: int
    package: str
    distribution: str
    role: str
    level: str
    site: str
    platform: str
    withs: List[str] = []


class UpsertPinResponse(BaseModel):
    pin: PinModel
    transaction_id: Optional[int] = None
    revision_id: Optional[int] = None


# =============================================================================
# Resolution
# =============================================================================

class ResolveResponse(BaseModel):
    """Response from /resolve - the winning pin, or every match in descendant mode."""
    package: str
    mode: str
    context: dict[str, str]
    pin: Optional[PinModel] = None
    pins: Optional[List[PinModel]] = None


class DependencyModel(BaseModel):
    package: str
    found: bool
    pin: Optional[PinModel] = None


class ExpandResponse(BaseModel):
    package: str
    context: dict[str, str]
    pin: PinModel
    dependencies: List[DependencyModel]
    missing: List[str] = []


# =============================================================================
# Audit
# =============================================================================

class ChangeDocumentResponse(BaseModel):
    transaction_id: int
    changes: dict[str, Any]


class PinChangeModel(BaseModel):
    """One version pin change, with its coordinate and distribution names."""
    event_id: int
    transaction_id: int
    action: str
    level: Optional[str] = None
    role: Optional[str] = None
    platform: Optional[str] = None
    site: Optional[str] = None
    package: Optional[str] = None
    old: Optional[str] = Field(None, description="Previous distribution (None for a new pin)")
    new: Optional[str] = Field(None, description="Distribution after the change")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "event_id": 42,
                "transaction_id": 7,
                "action": "UPDATE",
                "level": "facility.bayou",
                "role": "any",
                "platform": "any",
                "site": "any",
                "package": "maya",
                "old": "maya-2018.sp3",
                "new": "maya-2019",
            }
        }
    )


class PinChangeListResponse(BaseModel):
    transaction_id: int
    changes: List[PinChangeModel]
    count: int


class CreateRevisionRequest(BaseModel):
    """Request model for recording a revision of an existing transaction."""
    transaction_id: int
    author: str = Field(..., description="Who made the change")
    comment: str = Field(..., description="Why the change was made")


class RevisionModel(BaseModel):
    revision_id: int
    author: str
    created_at: str
    comment: str
    changes: dict[str, Any]
    transaction_id: Optional[int] = None


class RevisionListResponse(BaseModel):
    revisions: List[RevisionModel]
    count: int


class HealthResponse(BaseModel):
    status: str
    stats: dict[str, Any] = {}
