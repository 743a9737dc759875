"""Metadata extraction: ``yt-dlp -J`` and normalization of its output."""
import asyncio
import json
from typing import Any

from pydantic import ValidationError

from media_relay.core.config import Settings
from media_relay.core.logging import get_logger, safe_url
from media_relay.models.media import FormatDescriptor, MediaInfo, MediaQuery
from media_relay.services.errors import (
    ParseFailureError,
    ProcessFailureError,
    UpstreamFailureError,
)
from media_relay.services.process import ProcessInvoker

logger = get_logger(__name__)

DUMP_JSON_FLAG = "-J"


class InfoService:
    """Fetch and normalize media metadata."""

    # ------------------------------------------------------------------
    # Normalisation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def format_duration(duration_raw: Any) -> str:
        """Render seconds as ``"{minutes}m {seconds}s"``.

        Missing, zero or non-numeric durations render as ``""``.
        """
        if isinstance(duration_raw, bool) or not isinstance(duration_raw, (int, float)):
            return ""
        if not duration_raw:
            return ""
        minutes, seconds = divmod(duration_raw, 60)
        if isinstance(seconds, float) and seconds.is_integer():
            seconds = int(seconds)
        return f"{int(minutes)}m {seconds}s"

    @staticmethod
    def _normalize_format(raw_format: dict[str, Any]) -> FormatDescriptor:
        return FormatDescriptor(
            format_id=raw_format.get("format_id"),
            format=raw_format.get("format"),
            ext=raw_format.get("ext"),
            filesize=raw_format.get("filesize"),
            url=raw_format.get("url"),
            bitrate=raw_format.get("tbr"),
        )

    @staticmethod
    def sort_formats(formats: list[FormatDescriptor]) -> list[FormatDescriptor]:
        """Largest filesize first; unknown sizes count as 0; ties keep order."""
        return sorted(formats, key=lambda f: f.filesize or 0, reverse=True)

    @classmethod
    def build_media_info(cls, info: dict[str, Any], request_url: str) -> MediaInfo:
        """Project a ``yt-dlp -J`` document onto :class:`MediaInfo`.

        Raises:
            ParseFailureError: If the document has unexpected field types
        """
        try:
            raw_formats = info.get("formats") or []
            if not isinstance(raw_formats, list):
                raise ParseFailureError("'formats' is not a list")
            formats = [
                cls._normalize_format(f) for f in raw_formats if isinstance(f, dict)
            ]
            return MediaInfo(
                title=info.get("title"),
                id=info.get("id") or info.get("webpage_url"),
                uploader=info.get("uploader") or info.get("uploader_id") or "",
                duration_display=cls.format_duration(info.get("duration")),
                thumbnails=info.get("thumbnails") or [],
                formats=cls.sort_formats(formats),
                request_url=request_url,
            )
        except ValidationError as e:
            raise ParseFailureError(f"Unexpected yt-dlp output: {e}") from e

    @staticmethod
    def parse_info_json(raw: bytes) -> dict[str, Any]:
        """Decode the JSON document printed by ``yt-dlp -J``.

        Raises:
            ParseFailureError: If *raw* is not a JSON object
        """
        try:
            info = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ParseFailureError(f"Invalid JSON from yt-dlp: {e}") from e
        if not isinstance(info, dict):
            raise ParseFailureError("yt-dlp did not return a JSON object")
        return info

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @classmethod
    async def _dump_json(cls, url: str, settings: Settings) -> bytes:
        invocation = ProcessInvoker.run_captured(
            settings.YTDLP_BINARY, [DUMP_JSON_FLAG, url]
        )
        timeout = settings.YTDLP_INFO_TIMEOUT
        if timeout <= 0:
            return await invocation
        try:
            return await asyncio.wait_for(invocation, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamFailureError(
                f"yt-dlp timed out after {timeout:g} seconds"
            ) from e

    @classmethod
    async def fetch_info(cls, url: str | None, settings: Settings) -> MediaInfo:
        """Fetch normalized metadata for a media URL.

        Every call runs yt-dlp again; nothing is cached.

        Args:
            url: Page URL supplied by the client
            settings: Application settings

        Returns:
            Normalized media information

        Raises:
            InvalidInputError: If url is missing or blank
            UpstreamFailureError: If yt-dlp fails, times out, or prints
                something that is not valid metadata
        """
        query = MediaQuery.from_raw(url)
        log_url = safe_url(query.url)
        logger.info(f"Fetching info for: {log_url}")

        try:
            raw = await cls._dump_json(query.url, settings)
            media_info = cls.build_media_info(cls.parse_info_json(raw), query.url)
        except ProcessFailureError as e:
            logger.error(f"yt-dlp failed for {log_url}: {e.message}")
            raise UpstreamFailureError(e.message) from e
        except ParseFailureError as e:
            logger.error(f"Could not parse yt-dlp output for {log_url}: {e.message}")
            raise UpstreamFailureError(e.message) from e

        logger.info(
            f"Fetched {len(media_info.formats)} formats for: {log_url}"
        )
        return media_info
