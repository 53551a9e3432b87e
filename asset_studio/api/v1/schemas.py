from typing import List

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt

from asset_studio.models.settings import (
    BackgroundSettings,
    BackgroundType,
    BatchSettings,
    CropData,
    ExtendMode,
    FitMode,
    OptimizationSettings,
    Orientation,
    OutputSettings,
    PreprocessingSettings,
    StudioSettings,
    WallpaperMode,
    WallpaperSettings,
)
from asset_studio.services.transform import ResizeSettings, ToolSettings


class CropModel(BaseModel):
    """Crop rectangle in source-image pixels."""

    x: float = Field(..., description="Left edge in source pixels.")
    y: float = Field(..., description="Top edge in source pixels.")
    width: float = Field(..., gt=0, description="Crop width in source pixels.")
    height: float = Field(..., gt=0, description="Crop height in source pixels.")

    def to_settings(self) -> CropData:
        return CropData(x=self.x, y=self.y, width=self.width, height=self.height)


class BackgroundModel(BaseModel):
    type: BackgroundType = BackgroundType.BLUR
    blur_intensity: int = Field(default=50, ge=0, le=100, description="0-100, mapped to a 0-50px blur.")
    solid_color: str = "#000000"
    gradient_start: str = "#1e293b"
    gradient_end: str = "#0f172a"

    def to_settings(self) -> BackgroundSettings:
        return BackgroundSettings(**self.model_dump())


class WallpaperModel(BaseModel):
    """Reframing settings."""

    enabled: bool = False
    orientation: Orientation = Orientation.HORIZONTAL
    mode: WallpaperMode = WallpaperMode.FIT
    aspect_ratio: str = Field(default="16:9", description="Aspect ratio id or 'custom'.")
    custom_width: PositiveInt | None = None
    custom_height: PositiveInt | None = None
    background: BackgroundModel = Field(default_factory=BackgroundModel)
    extend_mode: ExtendMode = ExtendMode.MIRROR
    ai_generated_image: str | None = Field(
        default=None,
        description="Asset id returned by /wallpaper/ai-expand.",
    )
    crop: CropModel | None = None

    def to_settings(self) -> WallpaperSettings:
        return WallpaperSettings(
            enabled=self.enabled,
            orientation=self.orientation,
            mode=self.mode,
            aspect_ratio=self.aspect_ratio,
            custom_width=self.custom_width,
            custom_height=self.custom_height,
            background=self.background.to_settings(),
            extend_mode=self.extend_mode,
            ai_generated_image=self.ai_generated_image,
            crop=self.crop.to_settings() if self.crop is not None else None,
        )


class OutputModel(BaseModel):
    preset: str = Field(default="fhd", description="Preset id or 'custom'.")
    custom_width: PositiveInt = 1920
    custom_height: PositiveInt = 1080
    maintain_aspect: bool = True
    fit_mode: FitMode = FitMode.CONTAIN

    def to_settings(self) -> OutputSettings:
        return OutputSettings(**self.model_dump())


class OptimizationModel(BaseModel):
    format: str = Field(default="png", description="png, jpg, webp, avif, bmp or ico.")
    quality: int = Field(default=90, ge=1, le=100)
    target_size_enabled: bool = False
    target_size_mb: float = Field(default=1.0, gt=0)
    remove_metadata: bool = True

    def to_settings(self) -> OptimizationSettings:
        return OptimizationSettings(**self.model_dump())


class BatchModel(BaseModel):
    enabled: bool = False
    selected_presets: List[str] = Field(default_factory=list, description="Preset ids in export order.")

    def to_settings(self) -> BatchSettings:
        return BatchSettings(enabled=self.enabled, selected_presets=tuple(self.selected_presets))


class StudioSettingsModel(BaseModel):
    """Full settings payload, sent as a JSON form field next to the image."""

    wallpaper: WallpaperModel = Field(default_factory=WallpaperModel)
    output: OutputModel = Field(default_factory=OutputModel)
    remove_background: bool = Field(default=False, description="Run background removal first.")
    optimization: OptimizationModel = Field(default_factory=OptimizationModel)
    batch: BatchModel = Field(default_factory=BatchModel)

    def to_settings(self) -> StudioSettings:
        return StudioSettings(
            wallpaper=self.wallpaper.to_settings(),
            output=self.output.to_settings(),
            preprocessing=PreprocessingSettings(remove_background=self.remove_background),
            optimization=self.optimization.to_settings(),
            batch=self.batch.to_settings(),
        )


class ResizeModel(BaseModel):
    width: NonNegativeInt = Field(default=0, description="0 keeps the source width.")
    height: NonNegativeInt = Field(default=0, description="0 keeps the source height.")
    maintain_aspect: bool = True


class ToolSettingsModel(BaseModel):
    """Payload for /transform."""

    rotation: int = Field(default=0, description="Clockwise rotation: 0, 90, 180 or 270.")
    flip_h: bool = False
    flip_v: bool = False
    resize: ResizeModel = Field(default_factory=ResizeModel)
    crop: CropModel | None = None
    preview: bool = Field(default=False, description="Cap the result at 800px on the long side.")

    def to_settings(self) -> ToolSettings:
        return ToolSettings(
            rotation=self.rotation,
            flip_h=self.flip_h,
            flip_v=self.flip_v,
            resize=ResizeSettings(**self.resize.model_dump()),
            crop=self.crop.to_settings() if self.crop is not None else None,
        )


class PresetInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    width: int
    height: int
    category: str


class AspectRatioInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    ratio: float


class FormatInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    mime_type: str
    extension: str
    supports_quality: bool


class CatalogResponse(BaseModel):
    """Everything a client needs to build its settings controls."""

    presets: List[PresetInfo] = Field(default_factory=list)
    aspect_ratios: List[AspectRatioInfo] = Field(default_factory=list)
    formats: List[FormatInfo] = Field(default_factory=list)


class AIExpandResponse(BaseModel):
    ai_generated_image: str = Field(..., description="Asset id to set on wallpaper.ai_generated_image.")
    asset_url: str = Field(..., description="Where the generated image can be fetched.")
    width: int
    height: int
    strength: float = Field(..., description="Strength used for this expansion.")


class AIFeedbackRequest(BaseModel):
    good: bool = Field(..., description="Whether the user was satisfied with the result.")
    strength: float | None = Field(
        default=None,
        description="Strength that produced the result; defaults to the stored preference.",
    )


class AIFeedbackResponse(BaseModel):
    strength: float = Field(..., description="Strength used for the next expansion.")
