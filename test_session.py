"""
Tests for the interactive session: debounced renders and stale result handling.
"""

import asyncio
import time

import pytest

from asset_studio.models.images import Canvas
from asset_studio.models.settings import OutputSettings, PreprocessingSettings
from asset_studio.services.encoder import encode_png
from asset_studio.services.session import NoImageError, StudioSession
from asset_studio.services.stores import BitmapCache
from conftest import make_image_file


class SlowRemover:
    def remove(self, image, progress=None):
        time.sleep(0.2)
        return encode_png(Canvas.from_pixels(image.pixels))


def test_render_uses_current_settings():
    session = StudioSession(debounce_seconds=0)
    session.set_image(make_image_file(40, 30))
    session.update_settings(output=OutputSettings(preset="custom", custom_width=80, custom_height=60))

    canvas = asyncio.run(session.render())

    assert (canvas.width, canvas.height) == (80, 60)


def test_render_without_image_returns_none():
    assert asyncio.run(StudioSession(debounce_seconds=0).render()) is None


def test_superseded_render_is_dropped():
    session = StudioSession(debounce_seconds=0.05)
    session.set_image(make_image_file(20, 20))

    async def run():
        return await asyncio.gather(session.render(), session.render())

    first, second = asyncio.run(run())

    assert first is None
    assert isinstance(second, Canvas)


def test_stage_one_result_for_replaced_image_is_ignored():
    session = StudioSession(remover=SlowRemover(), debounce_seconds=0)
    session.set_image(make_image_file(20, 20, name="first.png"))
    session.update_settings(preprocessing=PreprocessingSettings(remove_background=True))

    async def run():
        task = asyncio.create_task(session.render())
        await asyncio.sleep(0.05)
        session.set_image(make_image_file(30, 30, name="second.png"))
        return await task

    assert asyncio.run(run()) is None


def test_set_image_releases_previous_image_and_cache():
    cache = BitmapCache()
    session = StudioSession(cache=cache, debounce_seconds=0)
    first = make_image_file(10, 10, name="first.png")
    session.set_image(first)
    asyncio.run(session.render())
    assert first.key in cache

    session.set_image(make_image_file(12, 12, name="second.png"))

    assert first.bitmap is None
    assert first.key not in cache
    assert session.image.name == "second.png"


def test_update_settings_produces_new_snapshot():
    session = StudioSession()
    before = session.settings
    after = session.update_settings(output=OutputSettings(preset="4k"))

    assert after is session.settings
    assert before.output.preset == "fhd"
    assert after.output.preset == "4k"


def test_export_requires_image():
    with pytest.raises(NoImageError):
        asyncio.run(StudioSession().export())


def test_session_export():
    session = StudioSession(debounce_seconds=0)
    session.set_image(make_image_file(16, 16, name="logo.png"))
    session.update_settings(output=OutputSettings(preset="instagram"))

    result = asyncio.run(session.export())

    assert result.filename == "logo_instagram.png"
    assert (result.width, result.height) == (1080, 1080)
