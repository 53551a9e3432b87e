"""
Single and batch export.

Both paths run Stage 1 once, compose per output size, and encode. Batch
export packs one file per selected preset into a ZIP archive.
"""

from __future__ import annotations

import asyncio
import logging
import re
import zipfile
from dataclasses import dataclass, replace
from io import BytesIO
from typing import Callable, Optional

from asset_studio.models.images import ImageFile
from asset_studio.models.settings import StudioSettings
from asset_studio.services.background_removal import BackgroundRemover
from asset_studio.services.compositor import compose_canvas, process_image
from asset_studio.services.encoder import Blob, EncodingError, canvas_to_blob, optimize_to_target_size
from asset_studio.services.presets import Preset, format_file_size, get_format, get_preset_by_id
from asset_studio.services.progress import ProgressChannel
from asset_studio.services.stores import AssetStore, BitmapCache


logger = logging.getLogger(__name__)

ZIP_MIME_TYPE = "application/zip"
_EXTENSION_RE = re.compile(r"\.[^/.]+$")

BatchProgress = Callable[[int, int], None]


@dataclass(slots=True, frozen=True)
class ExportResult:
    blob: Blob
    filename: str
    width: int
    height: int
    format: str
    quality: int

    @property
    def size(self) -> int:
        return self.blob.size


def generate_filename(
    original_name: str,
    preset: Preset | None,
    width: int,
    height: int,
    format_id: str,
    mode: str | None = None,
) -> str:
    """
    Build `<base>[_<mode>]_<preset-id|WxH><ext>`.

    The base is the original name without its last extension. Unknown
    formats get `.png`.
    """
    base_name = _EXTENSION_RE.sub("", original_name)
    option = get_format(format_id)
    extension = option.extension if option is not None else ".png"
    mode_suffix = f"_{mode}" if mode else ""
    size_suffix = f"_{preset.id}" if preset is not None else f"_{width}x{height}"
    return f"{base_name}{mode_suffix}{size_suffix}{extension}"


def _mode_label(settings: StudioSettings) -> str | None:
    return settings.wallpaper.mode.value if settings.wallpaper.enabled else None


async def export_single(
    image_file: ImageFile,
    settings: StudioSettings,
    *,
    cache: BitmapCache,
    remover: BackgroundRemover | None = None,
    assets: AssetStore | None = None,
    progress: ProgressChannel | None = None,
) -> ExportResult:
    """Process, compose and encode one image with the current settings."""
    source = await process_image(
        image_file, settings.preprocessing, cache=cache, remover=remover, progress=progress
    )
    canvas = compose_canvas(source, settings.wallpaper, settings.output, assets)

    optimization = settings.optimization
    format_id = optimization.format
    quality = optimization.quality

    if optimization.target_size_enabled and format_id != "ico":
        blob, quality = optimize_to_target_size(
            canvas, optimization.target_size_mb, format_id, quality
        )
    else:
        blob = canvas_to_blob(canvas, format_id, quality)

    filename = generate_filename(
        image_file.name,
        get_preset_by_id(settings.output.preset),
        canvas.width,
        canvas.height,
        format_id,
        _mode_label(settings),
    )
    logger.info(
        "Exported %s (%dx%d, %s, quality %d, %s)",
        filename,
        canvas.width,
        canvas.height,
        format_id,
        quality,
        format_file_size(blob.size),
    )
    return ExportResult(
        blob=blob,
        filename=filename,
        width=canvas.width,
        height=canvas.height,
        format=format_id,
        quality=quality,
    )


async def export_batch(
    image_file: ImageFile,
    settings: StudioSettings,
    on_progress: Optional[BatchProgress] = None,
    *,
    cache: BitmapCache,
    remover: BackgroundRemover | None = None,
    assets: AssetStore | None = None,
    progress: ProgressChannel | None = None,
) -> Blob:
    """
    Render every selected preset and return them as a ZIP archive.

    Presets are exported in selection order. Unknown preset ids are skipped,
    and an entry that fails to encode is logged and left out while the rest
    of the archive is kept. `on_progress(current, total)` fires after every
    selected id, and the loop yields to the event loop between entries.
    """
    preset_ids = list(settings.batch.selected_presets)
    total = len(preset_ids)
    optimization = settings.optimization

    source = await process_image(
        image_file, settings.preprocessing, cache=cache, remover=remover, progress=progress
    )

    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for index, preset_id in enumerate(preset_ids, start=1):
            preset = get_preset_by_id(preset_id)
            if preset is None:
                logger.warning("Skipping unknown preset %r in batch export", preset_id)
            else:
                output = replace(
                    settings.output,
                    preset=preset.id,
                    custom_width=preset.width,
                    custom_height=preset.height,
                )
                canvas = compose_canvas(source, settings.wallpaper, output, assets)
                try:
                    blob = canvas_to_blob(canvas, optimization.format, optimization.quality)
                except EncodingError as exc:
                    logger.error("Batch entry %s failed to encode: %s", preset.id, exc)
                else:
                    filename = generate_filename(
                        image_file.name,
                        preset,
                        canvas.width,
                        canvas.height,
                        optimization.format,
                        _mode_label(settings),
                    )
                    archive.writestr(filename, blob.data)

            if on_progress is not None:
                on_progress(index, total)
            await asyncio.sleep(0)

    logger.info("Batch export of %s finished (%d presets)", image_file.name, total)
    return Blob(buffer.getvalue(), ZIP_MIME_TYPE)
