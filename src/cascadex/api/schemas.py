"""Pydantic request/response schemas for the CascadeX API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from cascadex.ml.geometry import Detection


class FaceBox(BaseModel):
    """A detected face window in source-image pixel coordinates."""

    x: int = Field(description="Left edge in pixels")
    y: int = Field(description="Top edge in pixels")
    width: int = Field(description="Window width in pixels")
    height: int = Field(description="Window height in pixels")
    scale: float = Field(description="Cascade scale at which the window was accepted")

    @classmethod
    def from_detection(cls, detection: Detection) -> FaceBox:
        return cls(
            x=detection.x,
            y=detection.y,
            width=detection.width,
            height=detection.height,
            scale=detection.scale,
        )


class DetectFacesResponse(BaseModel):
    """Response for the face detection endpoint."""

    width: int
    height: int
    faces: list[FaceBox]


class TrackFaceResponse(BaseModel):
    """Response for the face tracking endpoint."""

    face: FaceBox | None = Field(description="The face selected for this frame, or null")
    faces: list[FaceBox]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    cascade_loaded: bool
    cascades_loaded: list[str]
    concurrent_requests: int
    queue_depth: int
    rejected_requests: int = Field(description="Requests rejected because the detection queue was full")


class CascadeInfo(BaseModel):
    """Information about a registered cascade."""

    name: str
    filename: str
    active: bool = Field(description="Whether this is the cascade used for detection")
    status: str = Field(description="Cascade status: 'loaded', 'available', or 'missing'")


class CascadesResponse(BaseModel):
    """Response for the cascades listing endpoint."""

    cascades: list[CascadeInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
