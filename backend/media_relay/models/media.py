"""Pydantic models for media-related API contracts."""
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from media_relay.services.errors import InvalidInputError


class InfoRequest(BaseModel):
    """Request body for metadata extraction."""

    url: str | None = Field(
        default=None,
        description="Page URL of the media item",
        examples=["https://www.youtube.com/watch?v=dQw4w9WgXcQ"],
    )


class MediaQuery(BaseModel):
    """A validated media URL, built once per request."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1)

    @classmethod
    def from_raw(cls, url: str | None) -> "MediaQuery":
        """Build a query from user input.

        Raises:
            InvalidInputError: If *url* is missing or blank
        """
        if url is None or not url.strip():
            raise InvalidInputError("Missing url")
        return cls(url=url)


class FormatDescriptor(BaseModel):
    """One rendition of a media item as listed by yt-dlp."""

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    format_id: str | None = Field(default=None, description="yt-dlp format identifier")
    format: str | None = Field(default=None, description="Human-readable format label")
    ext: str | None = Field(default=None, description="Container extension")
    filesize: int | None = Field(default=None, description="Size in bytes, when known")
    url: str | None = Field(default=None, description="Direct source URL for this rendition")
    bitrate: float | None = Field(default=None, description="Total bitrate in kbit/s")


class MediaInfo(BaseModel):
    """Normalized metadata returned by ``POST /info``."""

    model_config = ConfigDict(
        frozen=True,
        coerce_numbers_to_str=True,
        json_schema_extra={
            "example": {
                "title": "Example Video Title",
                "id": "dQw4w9WgXcQ",
                "uploader": "Example Channel",
                "duration_display": "3m 32s",
                "thumbnails": [{"url": "https://example.com/thumb.jpg"}],
                "formats": [
                    {
                        "format_id": "22",
                        "format": "22 - 1280x720 (720p)",
                        "ext": "mp4",
                        "filesize": 12345678,
                        "url": "https://example.com/videoplayback",
                        "bitrate": 1200.5,
                    }
                ],
                "request_url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            }
        },
    )

    title: str | None = Field(default=None, description="Media title")
    id: str | None = Field(default=None, description="Media id, or the page URL when absent")
    uploader: str = Field(default="", description="Uploader name or id")
    duration_display: str = Field(
        default="",
        description="Duration as 'Xm Ys', empty when unknown",
    )
    thumbnails: list[Any] = Field(default_factory=list)
    formats: list[FormatDescriptor] = Field(
        default_factory=list,
        description="Formats sorted by filesize, largest first",
    )
    request_url: str = Field(..., description="The URL that was requested")


class ErrorResponse(BaseModel):
    """Standard error response model."""

    code: Literal[
        "INVALID_INPUT",
        "PAYLOAD_TOO_LARGE",
        "PROCESS_FAILED",
        "PARSE_FAILED",
        "UPSTREAM_FAILED",
        "INTERNAL_ERROR",
    ] = Field(
        ...,
        description="Stable error code for programmatic handling",
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "UPSTREAM_FAILED",
                "message": "ERROR: [generic] Unsupported URL: https://example.com",
            }
        }
    )


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "unhealthy"] = Field(
        default="healthy",
        description="Health status of the service",
    )
    version: str = Field(
        default="0.1.0",
        description="API version",
    )
    tool: str = Field(..., description="Configured yt-dlp executable")
    tool_available: bool = Field(..., description="Whether the executable was found")
    yt_dlp_version: str | None = Field(
        default=None,
        description="Version of the installed yt-dlp package",
    )
