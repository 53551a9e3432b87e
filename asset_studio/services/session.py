"""
Interactive studio session.

Holds the current image and settings snapshot and turns settings changes into
debounced renders. Each render is tagged with a generation number; a render
that is overtaken by a newer request, or whose source image was replaced
while Stage 1 ran, resolves to None instead of a canvas.

This is the library API for interactive hosts that keep one image open and
re-render as the user edits. The HTTP routes are stateless and call the
compositor and export services directly.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any

from asset_studio.models.images import Canvas, ImageFile
from asset_studio.models.settings import StudioSettings
from asset_studio.services.background_removal import BackgroundRemover
from asset_studio.services.compositor import compose_canvas, process_image
from asset_studio.services.export import ExportResult, export_batch, export_single
from asset_studio.services.encoder import Blob
from asset_studio.services.progress import ProgressChannel
from asset_studio.services.stores import AssetStore, BitmapCache


logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.15


class NoImageError(RuntimeError):
    """Raised when an operation needs an image but none is loaded."""


class StudioSession:
    def __init__(
        self,
        cache: BitmapCache | None = None,
        remover: BackgroundRemover | None = None,
        assets: AssetStore | None = None,
        settings: StudioSettings | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self.cache = cache if cache is not None else BitmapCache()
        self.remover = remover
        self.assets = assets if assets is not None else AssetStore()
        self.progress = ProgressChannel()
        self.debounce_seconds = debounce_seconds
        self._settings = settings or StudioSettings()
        self._image: ImageFile | None = None
        self._generation = 0

    @property
    def image(self) -> ImageFile | None:
        return self._image

    @property
    def settings(self) -> StudioSettings:
        return self._settings

    @property
    def generation(self) -> int:
        return self._generation

    def set_image(self, image_file: ImageFile | None) -> None:
        """Replace the current image, releasing the previous one and its cache entries."""
        previous = self._image
        if previous is not None and previous is not image_file:
            if image_file is None or previous.key != image_file.key:
                self.cache.evict_source(previous.key)
            previous.release()
            logger.info("Released image %s", previous.name)
        self._image = image_file
        self._generation += 1

    def update_settings(self, settings: StudioSettings | None = None, **changes: Any) -> StudioSettings:
        """
        Swap in a new settings snapshot.

        Pass a full `StudioSettings`, or keyword replacements for its top-level
        groups (`wallpaper=...`, `output=...`).
        """
        base = settings if settings is not None else self._settings
        self._settings = replace(base, **changes) if changes else base
        return self._settings

    async def render(self) -> Canvas | None:
        """
        Render the current settings after the debounce delay.

        Returns None when there is no image or when the result was superseded.
        """
        self._generation += 1
        generation = self._generation

        if self.debounce_seconds > 0:
            await asyncio.sleep(self.debounce_seconds)
        if generation != self._generation:
            return None

        image_file = self._image
        if image_file is None:
            return None
        settings = self._settings

        source = await process_image(
            image_file,
            settings.preprocessing,
            cache=self.cache,
            remover=self.remover,
            progress=self.progress,
        )
        if image_file is not self._image:
            logger.debug("Discarding Stage 1 result for replaced image %s", image_file.name)
            return None
        if generation != self._generation:
            return None

        return compose_canvas(source, settings.wallpaper, settings.output, self.assets)

    def _require_image(self) -> ImageFile:
        if self._image is None:
            raise NoImageError("No image loaded.")
        return self._image

    async def export(self) -> ExportResult:
        return await export_single(
            self._require_image(),
            self._settings,
            cache=self.cache,
            remover=self.remover,
            assets=self.assets,
            progress=self.progress,
        )

    async def export_batch(self, on_progress=None) -> Blob:
        return await export_batch(
            self._require_image(),
            self._settings,
            on_progress,
            cache=self.cache,
            remover=self.remover,
            assets=self.assets,
            progress=self.progress,
        )
