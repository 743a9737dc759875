"""Media metadata and download endpoints."""
from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from media_relay.api.deps import enforce_body_limit, get_app_settings
from media_relay.core.config import Settings
from media_relay.core.logging import get_logger
from media_relay.models.media import ErrorResponse, InfoRequest, MediaInfo
from media_relay.services.download_service import (
    DOWNLOAD_MEDIA_TYPE,
    DownloadService,
    DownloadSession,
)
from media_relay.services.info_service import InfoService

logger = get_logger(__name__)

router = APIRouter()


class RelayResponse(StreamingResponse):
    """Streams a download session and kills its process when the response ends.

    The relay generator already terminates on early exit; this also covers
    servers that stop iterating without closing the generator.
    """

    def __init__(self, session: DownloadSession) -> None:
        super().__init__(
            DownloadService.relay(session),
            media_type=DOWNLOAD_MEDIA_TYPE,
            headers=session.headers,
        )
        self.session = session

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.session.process.terminate()


@router.post(
    "/info",
    response_model=MediaInfo,
    status_code=status.HTTP_200_OK,
    summary="Fetch media info",
    description="Run yt-dlp -J for a URL and return normalized metadata",
    responses={
        200: {"description": "Normalized metadata", "model": MediaInfo},
        400: {"description": "Missing url", "model": ErrorResponse},
        413: {"description": "Request body too large", "model": ErrorResponse},
        500: {"description": "yt-dlp failed or printed invalid JSON", "model": ErrorResponse},
    },
    dependencies=[Depends(enforce_body_limit)],
)
async def fetch_info(
    request: InfoRequest | None = Body(default=None),
    settings: Settings = Depends(get_app_settings),
) -> MediaInfo:
    """Fetch metadata for a media URL.

    Args:
        request: Body containing the media URL
        settings: Application settings

    Returns:
        Title, uploader, duration, thumbnails and formats
    """
    return await InfoService.fetch_info(request.url if request else None, settings)


@router.get(
    "/download",
    summary="Download media",
    description="Stream one format of a media item straight from yt-dlp stdout",
    responses={
        200: {
            "description": "Raw media bytes",
            "content": {DOWNLOAD_MEDIA_TYPE: {}},
        },
        400: {"description": "Missing url", "model": ErrorResponse},
        500: {"description": "yt-dlp could not be started", "model": ErrorResponse},
    },
)
async def download(
    url: str | None = Query(default=None, description="Media page URL"),
    format_id: str | None = Query(default=None, description="yt-dlp format id"),
    settings: Settings = Depends(get_app_settings),
) -> StreamingResponse:
    """Stream a media download.

    Headers are sent before yt-dlp writes anything; a failure after that
    point shows up only as a truncated body and a log entry.

    Args:
        url: Media page URL
        format_id: Optional yt-dlp format selector
        settings: Application settings

    Returns:
        Streaming response fed by yt-dlp stdout
    """
    session = await DownloadService.start_download(url, format_id, settings)
    logger.info(f"Streaming {session.filename} (pid {session.process.pid})")
    return RelayResponse(session)
