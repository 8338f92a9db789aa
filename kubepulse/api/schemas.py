"""Pydantic response models for the KubePulse API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from kubepulse.models.pods import WorkloadRecord
from kubepulse.status.resolver import StatusResolution


class ErrorResponse(BaseModel):
    """Uniform error envelope."""

    error: str
    detail: str = ""


class PodSummary(BaseModel):
    """One row of the pod table."""

    name: str
    namespace: str
    status: str
    ready: str = "0/0"
    restarts: int = 0

    @classmethod
    def from_resolution(cls, record: WorkloadRecord, resolution: StatusResolution) -> PodSummary:
        return cls(
            name=record.name,
            namespace=record.namespace,
            status=resolution.status,
            ready=resolution.ready,
            restarts=resolution.restarts,
        )


class PodListResponse(BaseModel):
    namespace: str = ""
    count: int = 0
    pods: list[PodSummary] = Field(default_factory=list)


class NamespaceListResponse(BaseModel):
    count: int = 0
    namespaces: list[str] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    namespace: str
    name: str
    deleted: bool = True


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    sessions: dict[str, str] = Field(default_factory=dict)
