from urllib.parse import quote

import requests
from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from asset_studio.api.v1.schemas import (
    AIExpandResponse,
    AIFeedbackRequest,
    AIFeedbackResponse,
    AspectRatioInfo,
    CatalogResponse,
    FormatInfo,
    PresetInfo,
    StudioSettingsModel,
    ToolSettingsModel,
)
from asset_studio.models.images import ImageFile
from asset_studio.models.settings import StudioSettings
from asset_studio.services.background_removal import get_background_remover
from asset_studio.services.compositor import process_image
from asset_studio.services.encoder import EncodingError, encode_png
from asset_studio.services.export import export_batch, export_single
from asset_studio.services.geometry import calculate_target_dimensions
from asset_studio.services.outpaint import OutpaintError, generate_ai_expansion, record_ai_feedback
from asset_studio.services.presets import ALL_PRESETS, ASPECT_RATIOS, FORMAT_OPTIONS, format_file_size
from asset_studio.services.providers import ProviderError, clamp_strength, get_provider_client
from asset_studio.services.rate_limiter import enforce_rate_limit, get_rate_limiter
from asset_studio.services.stores import get_asset_store, get_bitmap_cache, get_preference_store
from asset_studio.services.transform import apply_transformations, create_preview_canvas
from asset_studio.services.uploads import ImageValidationError, decode_image_file

router = APIRouter(prefix="/api/v1")


async def _read_image(upload: UploadFile) -> ImageFile:
    data = await upload.read()
    try:
        return decode_image_file(data, upload.filename or "image")
    except ImageValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


def _parse_settings(raw: str | None) -> StudioSettings:
    if not raw:
        return StudioSettings()
    try:
        return StudioSettingsModel.model_validate_json(raw).to_settings()
    except (ValidationError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Invalid `settings` payload. Expected a JSON StudioSettings object.",
        ) from exc


def _attachment(filename: str) -> str:
    return f"attachment; filename*=UTF-8''{quote(filename)}"


def _error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.get("/health", tags=["health"])
async def health_check() -> dict:
    """API v1 health check endpoint, with the provider proxy rate limit state."""
    return {"status": "ok", "api_version": "v1", "rate_limit": get_rate_limiter().get_stats()}


@router.get(
    "/presets",
    response_model=CatalogResponse,
    tags=["catalog"],
    summary="List output presets, aspect ratios and export formats",
)
async def list_presets() -> CatalogResponse:
    return CatalogResponse(
        presets=[PresetInfo.model_validate(p) for p in ALL_PRESETS],
        aspect_ratios=[AspectRatioInfo.model_validate(r) for r in ASPECT_RATIOS],
        formats=[FormatInfo.model_validate(f) for f in FORMAT_OPTIONS],
    )


@router.post(
    "/transform",
    tags=["tools"],
    summary="Crop, resize, flip and rotate an image",
    response_class=Response,
)
async def transform_image(
    image: UploadFile = File(..., description="Source image (PNG, JPEG, WEBP, AVIF or BMP)."),
    settings: str | None = Form(default=None, description="JSON-encoded tool settings."),
) -> Response:
    """
    Apply simple tool transforms and return the result as PNG.

    Order: crop, resize, flip, clockwise rotation. With `preview` set, the
    result is capped at 800px on its long side.
    """
    image_file = await _read_image(image)
    try:
        model = ToolSettingsModel.model_validate_json(settings) if settings else ToolSettingsModel()
        tool_settings = model.to_settings()
    except (ValidationError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid `settings` payload: {exc}",
        ) from exc

    if model.preview:
        canvas = create_preview_canvas(image_file.bitmap, tool_settings)
    else:
        canvas = apply_transformations(image_file.bitmap, tool_settings)

    try:
        data = encode_png(canvas)
    except EncodingError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return Response(content=data, media_type="image/png")


@router.post(
    "/export",
    tags=["export"],
    summary="Compose and encode a single image",
    response_class=Response,
)
async def export_image(
    image: UploadFile = File(..., description="Source image (PNG, JPEG, WEBP, AVIF or BMP)."),
    settings: str | None = Form(default=None, description="JSON-encoded studio settings."),
) -> Response:
    """
    Run the full pipeline for the current settings and return the file.

    The response carries the suggested filename in `Content-Disposition` and
    the quality actually used in `X-Export-Quality` (it differs from the
    requested one when a target size is set).
    """
    image_file = await _read_image(image)
    studio_settings = _parse_settings(settings)

    try:
        result = await export_single(
            image_file,
            studio_settings,
            cache=get_bitmap_cache(),
            remover=get_background_remover() if studio_settings.preprocessing.remove_background else None,
            assets=get_asset_store(),
        )
    except EncodingError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    return Response(
        content=result.blob.data,
        media_type=result.blob.mime_type,
        headers={
            "Content-Disposition": _attachment(result.filename),
            "X-Export-Quality": str(result.quality),
            "X-Export-Width": str(result.width),
            "X-Export-Height": str(result.height),
            "X-Export-Size": format_file_size(result.size),
        },
    )


@router.post(
    "/export/batch",
    tags=["export"],
    summary="Export one file per selected preset as a ZIP archive",
    response_class=Response,
)
async def export_image_batch(
    image: UploadFile = File(..., description="Source image (PNG, JPEG, WEBP, AVIF or BMP)."),
    settings: str | None = Form(default=None, description="JSON-encoded studio settings."),
) -> Response:
    image_file = await _read_image(image)
    studio_settings = _parse_settings(settings)
    if not studio_settings.batch.selected_presets:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Select at least one preset for batch export.",
        )

    blob = await export_batch(
        image_file,
        studio_settings,
        cache=get_bitmap_cache(),
        remover=get_background_remover() if studio_settings.preprocessing.remove_background else None,
        assets=get_asset_store(),
    )
    archive_name = f"{image_file.name.rsplit('.', 1)[0]}_batch.zip"
    return Response(
        content=blob.data,
        media_type=blob.mime_type,
        headers={"Content-Disposition": _attachment(archive_name)},
    )


@router.post(
    "/wallpaper/ai-expand",
    response_model=AIExpandResponse,
    tags=["wallpaper"],
    summary="Extend the canvas with AI outpainting",
)
async def ai_expand(
    image: UploadFile = File(..., description="Source image (PNG, JPEG, WEBP, AVIF or BMP)."),
    settings: str | None = Form(default=None, description="JSON-encoded studio settings."),
    prompt: str | None = Form(default=None, description="Optional prompt override."),
    provider: str | None = Form(default=None, description="'cloudflare' (default) or 'fal'."),
) -> AIExpandResponse:
    """
    Outpaint the source to the current target size.

    Set the returned `ai_generated_image` on the wallpaper settings to
    compose with the generated image.
    """
    image_file = await _read_image(image)
    studio_settings = _parse_settings(settings)
    width, height = calculate_target_dimensions(studio_settings.wallpaper, studio_settings.output)

    source = await process_image(
        image_file,
        studio_settings.preprocessing,
        cache=get_bitmap_cache(),
        remover=get_background_remover() if studio_settings.preprocessing.remove_background else None,
    )
    preferences = get_preference_store()
    strength = preferences.get_ai_strength()

    try:
        asset_id = await generate_ai_expansion(
            source.processed,
            width,
            height,
            prompt=prompt,
            provider=provider,
            preferences=preferences,
            assets=get_asset_store(),
        )
    except OutpaintError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except EncodingError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    return AIExpandResponse(
        ai_generated_image=asset_id,
        asset_url=f"{router.prefix}/assets/{asset_id}",
        width=width,
        height=height,
        strength=strength,
    )


@router.post(
    "/wallpaper/ai-feedback",
    response_model=AIFeedbackResponse,
    tags=["wallpaper"],
    summary="Record whether an AI expansion was satisfying",
)
async def ai_feedback(payload: AIFeedbackRequest) -> AIFeedbackResponse:
    strength = record_ai_feedback(payload.good, get_preference_store(), payload.strength)
    return AIFeedbackResponse(strength=strength)


@router.get(
    "/assets/{asset_id}",
    tags=["wallpaper"],
    summary="Fetch a generated image",
    response_class=Response,
)
async def get_asset(asset_id: str) -> Response:
    payload = get_asset_store().get_bytes(asset_id)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found or expired.")
    data, mime_type = payload
    return Response(content=data, media_type=mime_type)


@router.post(
    "/outpaint",
    tags=["providers"],
    summary="Inpainting proxy (Cloudflare Workers AI or fal.ai)",
    response_class=Response,
)
async def outpaint_proxy(
    image: UploadFile | None = File(default=None),
    mask: UploadFile | None = File(default=None),
    prompt: str | None = Form(default=None),
    provider: str | None = Form(default=None),
    strength: str | None = Form(default=None),
    width: str | None = Form(default=None),
    height: str | None = Form(default=None),
    _rate_limit=Depends(enforce_rate_limit),
) -> Response:
    """
    Forward an image and mask to the selected provider.

    Responds with the generated image, or with JSON `{error}` and the
    provider's status code.
    """
    if image is None or mask is None:
        return _error_response("Image or mask is missing.", status.HTTP_400_BAD_REQUEST)

    image_bytes = await image.read()
    mask_bytes = await mask.read()

    try:
        data, content_type = await run_in_threadpool(
            get_provider_client().outpaint,
            image_bytes,
            mask_bytes,
            prompt=prompt,
            provider=provider,
            strength=clamp_strength(strength),
            width=_int_or(width, 1920),
            height=_int_or(height, 1080),
            image_mime=image.content_type or "image/png",
            mask_mime=mask.content_type or "image/png",
        )
    except ProviderError as exc:
        return _error_response(str(exc), exc.status_code)
    except requests.exceptions.RequestException as exc:
        return _error_response(str(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response(content=data, media_type=content_type)


@router.post(
    "/remove-bg",
    tags=["providers"],
    summary="Background removal proxy (remove.bg)",
    response_class=Response,
)
async def remove_bg_proxy(
    image: UploadFile | None = File(default=None),
    _rate_limit=Depends(enforce_rate_limit),
) -> Response:
    if image is None:
        return _error_response("No image uploaded.", status.HTTP_400_BAD_REQUEST)

    image_bytes = await image.read()
    try:
        data = await run_in_threadpool(
            get_provider_client().remove_background,
            image_bytes,
            image.filename or "image.png",
            image.content_type or "image/png",
        )
    except ProviderError as exc:
        return _error_response(str(exc), exc.status_code)
    except requests.exceptions.RequestException as exc:
        return _error_response(str(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response(content=data, media_type="image/png")


def _int_or(raw: str | None, default: int) -> int:
    try:
        value = int(raw or 0)
    except ValueError:
        return default
    return value or default
