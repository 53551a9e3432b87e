"""
Two-stage composition pipeline.

Stage 1 (`process_image`) is the expensive, cached step: optional background
removal. Stage 2 (`compose_canvas`) is cheap and re-run on every settings
change; it only reads the Stage 1 bitmaps.
"""

from __future__ import annotations

import logging

from fastapi.concurrency import run_in_threadpool

from asset_studio.models.images import Canvas, ImageFile, ProcessedSource
from asset_studio.models.settings import (
    BackgroundType,
    ExtendMode,
    FitMode,
    OutputSettings,
    PreprocessingSettings,
    WallpaperMode,
    WallpaperSettings,
)
from asset_studio.services.background_removal import BackgroundRemover
from asset_studio.services.drawing import (
    apply_crop,
    draw_blurred_background,
    draw_centered_image,
    draw_gradient_background,
    draw_image,
    draw_mirrored_edges,
    draw_solid_background,
    draw_stretched_edges,
)
from asset_studio.services.geometry import calculate_target_dimensions
from asset_studio.services.progress import ProgressChannel, ProgressEvent
from asset_studio.services.stores import AssetStore, BitmapCache
from asset_studio.services.uploads import ImageValidationError, decode_bitmap


logger = logging.getLogger(__name__)

# Preview fill behind the foreground while an AI extension is pending.
AI_PLACEHOLDER_COLOR = "#1a1a1a"


class SourceUnavailableError(ValueError):
    """Raised when an image file no longer holds a decoded bitmap."""


async def process_image(
    image_file: ImageFile,
    preprocessing: PreprocessingSettings,
    *,
    cache: BitmapCache,
    remover: BackgroundRemover | None = None,
    progress: ProgressChannel | None = None,
) -> ProcessedSource:
    """
    Stage 1: cache the original bitmap and optionally remove its background.

    Background removal failures are not fatal: they are logged and the
    original is used as the foreground so export can still proceed.
    """
    cached = cache.get(image_file.key)
    if cached is None:
        if image_file.bitmap is None:
            raise SourceUnavailableError(f"Image {image_file.name!r} has been released.")
        cached = cache.put(image_file.key, image_file.bitmap)
    original = cached

    if not preprocessing.remove_background or remover is None:
        if preprocessing.remove_background:
            logger.warning("Background removal requested but no remover configured")
        return ProcessedSource(original=original, processed=original)

    cutout_key = (image_file.key, "cutout")
    cutout = cache.get(cutout_key)
    if cutout is not None:
        return ProcessedSource(original=original, processed=cutout)

    channel = progress or ProgressChannel()
    report = channel.backend_callback()
    channel.publish(ProgressEvent(phase="download-model", percent=0, message="Preparing background removal"))

    try:
        png = await run_in_threadpool(remover.remove, original, report)
        cutout = decode_bitmap(png)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Background removal failed for %s, using original image: %s",
            image_file.name,
            exc,
        )
        return ProcessedSource(original=original, processed=original)

    cutout = cache.put(cutout_key, cutout)
    channel.publish(ProgressEvent(phase="compute-mask", percent=99, message="Background removed"))
    logger.info("Background removed for %s (%dx%d)", image_file.name, cutout.width, cutout.height)
    return ProcessedSource(original=original, processed=cutout)


def compose_canvas(
    source: ProcessedSource,
    wallpaper: WallpaperSettings,
    output: OutputSettings,
    assets: AssetStore | None = None,
) -> Canvas:
    """
    Stage 2: draw background and foreground onto a new canvas.

    Dispatch order:
    1. An attached AI expansion is drawn stretched to the full target.
    2. Reframing disabled: foreground centered per `output.fit_mode`.
    3. FIT: background (blur/solid/gradient), then foreground contained.
    4. CROP: crop rect stretched to the target, or centered cover.
    5. EXTEND: mirrored or stretched edges; a pending AI extension shows a
       dark placeholder with the foreground contained.
    """
    width, height = calculate_target_dimensions(wallpaper, output)
    canvas = Canvas(width=width, height=height)
    foreground = source.processed

    if wallpaper.ai_generated_image:
        generated = _resolve_generated(assets, wallpaper.ai_generated_image)
        if generated is not None:
            draw_image(canvas, generated, 0, 0, width, height)
            return canvas
        logger.warning(
            "AI image %s is not available, rendering %s mode instead",
            wallpaper.ai_generated_image,
            wallpaper.mode.value,
        )

    if not wallpaper.enabled:
        draw_centered_image(canvas, foreground, width, height, output.fit_mode)
        return canvas

    if wallpaper.mode == WallpaperMode.FIT:
        _draw_background(canvas, source, wallpaper, width, height)
        draw_centered_image(canvas, foreground, width, height, FitMode.CONTAIN)
    elif wallpaper.mode == WallpaperMode.CROP:
        if wallpaper.crop is not None:
            apply_crop(canvas, foreground, wallpaper.crop, width, height)
        else:
            draw_centered_image(canvas, foreground, width, height, FitMode.COVER)
    elif wallpaper.mode == WallpaperMode.EXTEND:
        if wallpaper.extend_mode == ExtendMode.MIRROR:
            draw_mirrored_edges(canvas, foreground, width, height)
        elif wallpaper.extend_mode == ExtendMode.STRETCH:
            draw_stretched_edges(canvas, foreground, width, height)
        else:
            draw_solid_background(canvas, width, height, AI_PLACEHOLDER_COLOR)
            draw_centered_image(canvas, foreground, width, height, FitMode.CONTAIN)

    return canvas


def _resolve_generated(assets: AssetStore | None, asset_id: str):
    if assets is None:
        return None
    try:
        return assets.get_bitmap(asset_id)
    except ImageValidationError as exc:
        logger.error("AI image %s could not be decoded: %s", asset_id, exc)
        return None


def _draw_background(
    canvas: Canvas,
    source: ProcessedSource,
    wallpaper: WallpaperSettings,
    width: int,
    height: int,
) -> None:
    background = wallpaper.background
    if background.type == BackgroundType.BLUR:
        # Blur the full original so a cutout foreground still gets a backdrop.
        draw_blurred_background(canvas, source.original, width, height, background.blur_intensity)
    elif background.type == BackgroundType.SOLID:
        draw_solid_background(canvas, width, height, background.solid_color)
    elif background.type == BackgroundType.GRADIENT:
        draw_gradient_background(
            canvas, width, height, background.gradient_start, background.gradient_end
        )
