"""API route definitions."""

from __future__ import annotations

import logging
from dataclasses import replace
from http import HTTPStatus
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, Form, HTTPException, Query, Request, UploadFile, status

from cascadex.api.middleware import check_upload_size, get_settings_from_request, verify_api_key
from cascadex.api.schemas import (
    CascadeInfo,
    CascadesResponse,
    DetectFacesResponse,
    ErrorResponse,
    FaceBox,
    HealthResponse,
    TrackFaceResponse,
)
from cascadex.ml.cascade import CascadeFormatError
from cascadex.ml.cascade_manager import CASCADE_REGISTRY
from cascadex.ml.face_detector import CascadeFaceDetector
from cascadex.ml.geometry import Detection
from cascadex.ml.preprocessing import load_grayscale
from cascadex.ml.scanner import ScanConfigError
from cascadex.ml.tracking import select_face

if TYPE_CHECKING:
    from cascadex.config import Settings
    from cascadex.ml.cascade import Cascade
    from cascadex.ml.cascade_manager import CascadeManager
    from cascadex.ml.inference import InferencePool
    from cascadex.ml.preprocessing import GrayscaleImage
    from cascadex.ml.scanner import ScanOptions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

_DETECTION_ERRORS: dict[int | str, dict[str, object]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    HTTPStatus.REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
    HTTPStatus.UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_cascade_manager(request: Request) -> CascadeManager:
    manager: CascadeManager = request.app.state.cascade_manager
    return manager


def _load_active_cascade(manager: CascadeManager, name: str) -> Cascade | None:
    try:
        return manager.get_cascade(name)
    except (KeyError, FileNotFoundError, CascadeFormatError) as exc:
        logger.warning("Cascade %s unavailable, detection disabled: %s", name, exc)
        return None


def _scan_options(settings: Settings, **overrides: float | None) -> ScanOptions:
    """Configured scan options with any non-None query overrides applied."""
    try:
        return replace(settings.scan_options(), **{k: v for k, v in overrides.items() if v is not None})
    except ScanConfigError as exc:
        raise HTTPException(status_code=HTTPStatus.UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


async def _run_detection(
    request: Request,
    file: UploadFile,
    options: ScanOptions,
    overlap_threshold: float,
) -> tuple[GrayscaleImage, list[Detection]]:
    settings = get_settings_from_request(request)
    manager = _get_cascade_manager(request)
    payload = await file.read()
    check_upload_size(settings, payload)

    def work() -> tuple[GrayscaleImage, list[Detection]]:
        image = load_grayscale(payload, settings.max_image_pixels)
        detector = CascadeFaceDetector(
            _load_active_cascade(manager, settings.cascade_name),
            options,
            overlap_threshold,
            vectorized=settings.vectorized_scan,
        )
        return image, detector.detect(image)

    try:
        return await _get_inference_pool(request).run(work)
    except TimeoutError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Detection queue is full, try again later",
        ) from None
    except ScanConfigError as exc:
        raise HTTPException(status_code=HTTPStatus.UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post(
    "/detect-faces",
    response_model=DetectFacesResponse,
    responses=_DETECTION_ERRORS,
    summary="Detect faces in an image",
)
async def detect_faces(
    request: Request,
    file: UploadFile,
    scale_factor: Annotated[float | None, Query(gt=1.0)] = None,
    min_size: Annotated[int | None, Query(ge=1)] = None,
    max_size: Annotated[int | None, Query(ge=1)] = None,
    overlap_threshold: Annotated[float | None, Query(ge=0.0, le=1.0)] = None,
) -> DetectFacesResponse:
    """Detect all faces in an uploaded image."""
    settings = get_settings_from_request(request)
    options = _scan_options(settings, scale_factor=scale_factor, min_size=min_size, max_size=max_size)
    overlap = overlap_threshold if overlap_threshold is not None else settings.overlap_threshold

    image, detections = await _run_detection(request, file, options, overlap)
    return DetectFacesResponse(
        width=image.width,
        height=image.height,
        faces=[FaceBox.from_detection(d) for d in detections],
    )


@router.post(
    "/track-face",
    response_model=TrackFaceResponse,
    responses=_DETECTION_ERRORS,
    summary="Select the face to follow in a video frame",
)
async def track_face(
    request: Request,
    file: UploadFile,
    prev_x: Annotated[int | None, Form()] = None,
    prev_y: Annotated[int | None, Form()] = None,
    prev_width: Annotated[int | None, Form(ge=1)] = None,
    prev_height: Annotated[int | None, Form(ge=1)] = None,
) -> TrackFaceResponse:
    """Detect faces and pick the one continuing the previous frame's selection.

    The client carries the selected box between frames and sends it back as
    ``prev_*`` fields; omit all four for the first frame.
    """
    settings = get_settings_from_request(request)
    previous_fields = (prev_x, prev_y, prev_width, prev_height)
    if any(v is None for v in previous_fields) and any(v is not None for v in previous_fields):
        raise HTTPException(
            status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
            detail="prev_x, prev_y, prev_width and prev_height must be given together",
        )
    previous = None
    if prev_x is not None and prev_y is not None and prev_width is not None and prev_height is not None:
        previous = Detection(x=prev_x, y=prev_y, width=prev_width, height=prev_height)

    options = _scan_options(settings)
    _image, detections = await _run_detection(request, file, options, settings.overlap_threshold)
    selected = select_face(detections, previous, settings.track_min_iou)
    return TrackFaceResponse(
        face=FaceBox.from_detection(selected) if selected is not None else None,
        faces=[FaceBox.from_detection(d) for d in detections],
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = get_settings_from_request(request)
    pool = _get_inference_pool(request)
    manager = _get_cascade_manager(request)
    manager.unload_idle_cascades()
    loaded = manager.get_loaded_cascades()
    return HealthResponse(
        status="ok",
        cascade_loaded=settings.cascade_name in loaded,
        cascades_loaded=loaded,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
        rejected_requests=pool.rejected_count,
    )


@router.get(
    "/cascades",
    response_model=CascadesResponse,
    summary="List registered cascades",
)
async def list_cascades(request: Request) -> CascadesResponse:
    """Return registered cascades and their status."""
    settings = get_settings_from_request(request)
    manager = _get_cascade_manager(request)
    loaded = set(manager.get_loaded_cascades())

    cascades: list[CascadeInfo] = []
    for name, entry in CASCADE_REGISTRY.items():
        if name in loaded:
            cascade_status = "loaded"
        elif manager.is_available(name):
            cascade_status = "available"
        else:
            cascade_status = "missing"
        cascades.append(
            CascadeInfo(
                name=name,
                filename=entry.filename,
                active=name == settings.cascade_name,
                status=cascade_status,
            )
        )

    return CascadesResponse(cascades=cascades)
