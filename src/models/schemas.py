"""
Pydantic Models and Schemas
===========================

Core data models for still render jobs, progress state, decisions and results.
Snapshots and decisions are frozen; only the orchestrator's progress aggregate
replaces them over the lifetime of a job.
"""

from typing import Optional, List, Dict, Any, Tuple, Literal
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Enums
class ImageFormat(str, Enum):
    """Still image output formats."""
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"
    PDF = "pdf"

    @property
    def extension(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ImageFormat"]:
        """Parse a format name or file extension, returning None when unknown."""
        if value is None:
            return None
        normalized = value.strip().lower().lstrip(".")
        if normalized == "jpg":
            normalized = "jpeg"
        try:
            return cls(normalized)
        except ValueError:
            return None


class JobStatus(str, Enum):
    """Still job outcome."""
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ProgressMode(str, Enum):
    """Console progress display modes."""
    OVERWRITE = "overwrite"
    APPEND = "append"


# Job Configuration
class JobConfig(BaseModel):
    """Immutable configuration of a single still render job."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    entry_point: str = Field(..., min_length=1, description="Project entry file or serve URL")
    entry_point_reason: str = Field("argument", description="Why this entry point was chosen")
    composition_id: Optional[str] = Field(None, min_length=1, description="Composition to render")
    remaining_args: Tuple[str, ...] = Field(default=(), description="Unconsumed positional args")

    # Dimension overrides
    width: Optional[int] = Field(None, gt=0, description="Width override in pixels")
    height: Optional[int] = Field(None, gt=0, description="Height override in pixels")

    frame: int = Field(0, description="Frame index; negative values count from the end")
    image_format: Optional[ImageFormat] = Field(None, description="Explicit image format")
    jpeg_quality: Optional[int] = Field(None, ge=0, le=100, description="JPEG quality (0-100)")
    scale: Optional[float] = Field(None, gt=0, le=16, description="Device scale factor")
    timeout_ms: Optional[int] = Field(None, gt=0, description="Browser timeout in milliseconds")

    env_variables: Dict[str, str] = Field(default_factory=dict, description="Env for user code")
    input_props: Dict[str, Any] = Field(default_factory=dict, description="Composition input props")

    overwrite: bool = Field(False, description="Overwrite an existing output file")
    output_location: Optional[str] = Field(None, min_length=1, description="Requested output path")
    public_dir: Optional[str] = Field(None, description="Static directory copied with the bundle")
    port: Optional[int] = Field(None, ge=0, le=65535, description="Local server port")
    concurrency: Literal[1] = Field(1, description="Still jobs always render with one tab")

    @field_validator("image_format", mode="before")
    @classmethod
    def parse_image_format(cls, v: Any) -> Any:
        """Accept format aliases such as 'jpg'."""
        if isinstance(v, str):
            parsed = ImageFormat.parse(v)
            if parsed is None:
                raise ValueError(f"Unsupported image format: {v!r}")
            return parsed
        return v

    @field_validator("entry_point")
    @classmethod
    def validate_entry_point(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Entry point cannot be empty")
        return v.strip()

    @property
    def entry_is_url(self) -> bool:
        return self.entry_point.startswith(("http://", "https://"))


# Progress Models
class BundlingProgress(BaseModel):
    """Bundler progress."""
    model_config = ConfigDict(frozen=True)

    progress: float = Field(0.0, ge=0.0, le=1.0, description="Bundling progress (0-1)")
    done_in_ms: Optional[int] = Field(None, description="Bundling time once finished")


class CopyingState(BaseModel):
    """Public directory copy progress."""
    model_config = ConfigDict(frozen=True)

    bytes_copied: int = Field(0, ge=0, description="Bytes copied so far")
    done_in_ms: Optional[int] = Field(None, description="Copy time once finished")


class BrowserDownloadProgress(BaseModel):
    """Browser binary download progress."""
    model_config = ConfigDict(frozen=True)

    progress: float = Field(0.0, ge=0.0, le=1.0)
    total_bytes: Optional[int] = None
    done_in_ms: Optional[int] = None


class RenderingProgress(BaseModel):
    """Frame rendering progress."""
    model_config = ConfigDict(frozen=True)

    frames_done: int = Field(0, ge=0)
    total_frames: int = Field(1, ge=1)
    done_in_ms: Optional[int] = None
    time_remaining_ms: Optional[int] = None


class DownloadProgress(BaseModel):
    """Progress of one asset fetched while rendering."""
    model_config = ConfigDict(frozen=True)

    asset_id: str
    name: str
    progress: Optional[float] = Field(None, ge=0.0, le=1.0)
    downloaded_bytes: int = Field(0, ge=0)
    total_bytes: Optional[int] = None


class AggregateSnapshot(BaseModel):
    """Point-in-time view of a job's aggregate progress, shared by all sinks."""
    model_config = ConfigDict(frozen=True)

    bundling: BundlingProgress = Field(default_factory=BundlingProgress)
    copying_state: CopyingState = Field(default_factory=CopyingState)
    browser_download: Optional[BrowserDownloadProgress] = None
    rendering: Optional[RenderingProgress] = None
    downloads: Dict[str, DownloadProgress] = Field(default_factory=dict)


# Composition and Decision Models
class CompositionConfig(BaseModel):
    """Metadata of one composition as reported by the project."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    fps: float = Field(30.0, gt=0)
    duration_in_frames: int = Field(1, ge=1)
    props: Dict[str, Any] = Field(default_factory=dict)


class CompositionResolution(BaseModel):
    """Result of resolving which composition to render."""
    model_config = ConfigDict(frozen=True)

    id: str
    config: CompositionConfig
    reason: str = Field(..., description="Which selection rule picked the composition")
    remaining_args: Tuple[str, ...] = ()


class FormatDecision(BaseModel):
    """Resolved image format together with the tier that provided it."""
    model_config = ConfigDict(frozen=True)

    format: ImageFormat
    source: str


class OutputLocation(BaseModel):
    """Final write location of the still."""
    model_config = ConfigDict(frozen=True)

    relative_path: str
    absolute_path: Path
    existed_before_write: bool
    source: str = Field("", description="Which tier provided the path")


# Result Models
class JobResult(BaseModel):
    """Outcome of running a job's stages."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: JobStatus
    completed_stages: List[str] = Field(default_factory=list)
    error: Optional[BaseException] = Field(None, description="Typed failure if not completed")
    processing_time: float = Field(0.0, description="Processing time in seconds")

    @property
    def ok(self) -> bool:
        return self.status == JobStatus.COMPLETED

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


class StillRenderSummary(BaseModel):
    """What a successful still render produced."""
    model_config = ConfigDict(frozen=True)

    composition_id: str
    composition_reason: str
    image_format: ImageFormat
    format_source: str
    output: OutputLocation
    render_time_ms: int
    summary_line: str


# Collaborator Requests
class StillRenderRequest(BaseModel):
    """Everything the still renderer needs for one frame."""
    model_config = ConfigDict(frozen=True)

    composition: CompositionConfig
    frame: int = Field(..., ge=0)
    serve_url: str
    output_path: Path
    image_format: ImageFormat
    jpeg_quality: int = Field(80, ge=0, le=100)
    scale: float = Field(1.0, gt=0)
    timeout_ms: int = Field(30000, gt=0)
    env_variables: Dict[str, str] = Field(default_factory=dict)
    input_props: Dict[str, Any] = Field(default_factory=dict)
    overwrite: bool = False
