from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Orientation(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


class WallpaperMode(str, Enum):
    """How the source is placed when reframing to a new aspect ratio."""

    FIT = "fit"
    CROP = "crop"
    EXTEND = "extend"


class BackgroundType(str, Enum):
    BLUR = "blur"
    SOLID = "solid"
    GRADIENT = "gradient"


class ExtendMode(str, Enum):
    MIRROR = "mirror"
    STRETCH = "stretch"
    AI = "ai"


class FitMode(str, Enum):
    CONTAIN = "contain"
    COVER = "cover"


@dataclass(slots=True, frozen=True)
class CropData:
    """
    Crop rectangle in source-image pixel coordinates.

    Bounds are not validated here; drawing clamps the rectangle to the image.
    """

    x: float
    y: float
    width: float
    height: float


@dataclass(slots=True, frozen=True)
class BackgroundSettings:
    type: BackgroundType = BackgroundType.BLUR
    # 0-100, mapped to a 0-50px blur radius.
    blur_intensity: int = 50
    solid_color: str = "#000000"
    gradient_start: str = "#1e293b"
    gradient_end: str = "#0f172a"


@dataclass(slots=True, frozen=True)
class WallpaperSettings:
    """
    Reframing settings.

    `extend_mode` only matters when `mode` is EXTEND, and `crop` only when
    `mode` is CROP. `ai_generated_image` is an asset reference produced by the
    outpaint flow; once set it replaces every other mode at compose time.
    """

    enabled: bool = False
    orientation: Orientation = Orientation.HORIZONTAL
    mode: WallpaperMode = WallpaperMode.FIT
    aspect_ratio: str = "16:9"
    custom_width: int | None = None
    custom_height: int | None = None
    background: BackgroundSettings = field(default_factory=BackgroundSettings)
    extend_mode: ExtendMode = ExtendMode.MIRROR
    ai_generated_image: str | None = None
    crop: CropData | None = None


@dataclass(slots=True, frozen=True)
class OutputSettings:
    # Catalog preset id, or "custom" to use custom_width/custom_height.
    preset: str = "fhd"
    custom_width: int = 1920
    custom_height: int = 1080
    maintain_aspect: bool = True
    fit_mode: FitMode = FitMode.CONTAIN


@dataclass(slots=True, frozen=True)
class PreprocessingSettings:
    remove_background: bool = False


@dataclass(slots=True, frozen=True)
class OptimizationSettings:
    format: str = "png"
    quality: int = 90
    target_size_enabled: bool = False
    target_size_mb: float = 1.0
    # Encoded output never carries source metadata; kept for settings parity.
    remove_metadata: bool = True


@dataclass(slots=True, frozen=True)
class BatchSettings:
    enabled: bool = False
    # Export order follows this tuple exactly.
    selected_presets: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class StudioSettings:
    """
    Immutable snapshot of every studio setting.

    Updates always go through `dataclasses.replace` so a render can compare the
    snapshot it started with against the current one.
    """

    wallpaper: WallpaperSettings = field(default_factory=WallpaperSettings)
    output: OutputSettings = field(default_factory=OutputSettings)
    preprocessing: PreprocessingSettings = field(default_factory=PreprocessingSettings)
    optimization: OptimizationSettings = field(default_factory=OptimizationSettings)
    batch: BatchSettings = field(default_factory=BatchSettings)
