"""Streaming downloads: ``yt-dlp [-f FORMAT] -o - URL`` relayed to the client."""
import re
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator

from media_relay.core.config import Settings
from media_relay.core.logging import get_logger, safe_url
from media_relay.models.media import MediaQuery
from media_relay.services.errors import ProcessFailureError, UpstreamFailureError
from media_relay.services.process import ProcessInvoker, StreamingProcess

logger = get_logger(__name__)

DOWNLOAD_MEDIA_TYPE = "application/octet-stream"
DEFAULT_EXTENSION = "media"
FILENAME_STEM = "download"

_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]")


@dataclass(frozen=True)
class DownloadSession:
    """A running yt-dlp process paired with the response it feeds."""

    process: StreamingProcess
    url: str
    format_id: str | None
    filename: str
    chunk_size: int

    @property
    def headers(self) -> dict[str, str]:
        return {"Content-Disposition": f'attachment; filename="{self.filename}"'}


class DownloadService:
    """Start yt-dlp downloads and relay their stdout."""

    @staticmethod
    def build_download_args(url: str, format_id: str | None) -> list[str]:
        """Arguments for writing one format to stdout; the URL goes last."""
        args: list[str] = []
        if format_id:
            args.extend(["-f", format_id])
        args.extend(["-o", "-"])
        args.append(url)
        return args

    @staticmethod
    def build_filename(format_id: str | None) -> str:
        """``download.<format_id stripped to ASCII alphanumerics>``.

        Without a format the extension is ``media``.
        """
        if not format_id:
            return f"{FILENAME_STEM}.{DEFAULT_EXTENSION}"
        return f"{FILENAME_STEM}.{_NON_ALNUM_RE.sub('', format_id)}"

    @classmethod
    async def start_download(
        cls,
        url: str | None,
        format_id: str | None,
        settings: Settings,
    ) -> DownloadSession:
        """Spawn yt-dlp for a streaming download.

        ``format_id`` is handed to yt-dlp as is; an unknown id surfaces as
        a yt-dlp failure once streaming has started.

        Args:
            url: Page URL supplied by the client
            format_id: Optional yt-dlp format selector
            settings: Application settings

        Returns:
            Session whose process is already running

        Raises:
            InvalidInputError: If url is missing or blank
            UpstreamFailureError: If yt-dlp cannot be started
        """
        query = MediaQuery.from_raw(url)
        format_id = format_id or None
        args = cls.build_download_args(query.url, format_id)

        log_url = safe_url(query.url)
        logger.info(f"Starting download for format {format_id or 'default'} from {log_url}")

        try:
            process = await ProcessInvoker.run_streaming(settings.YTDLP_BINARY, args)
        except ProcessFailureError as e:
            raise UpstreamFailureError(e.message) from e

        return DownloadSession(
            process=process,
            url=query.url,
            format_id=format_id,
            filename=cls.build_filename(format_id),
            chunk_size=settings.YTDLP_STREAM_CHUNK_SIZE,
        )

    @staticmethod
    async def relay(session: DownloadSession) -> AsyncIterator[bytes]:
        """Yield yt-dlp stdout chunks until the process finishes.

        Leaving early (client disconnect, cancellation, ``aclose()``) kills
        the process. A non-zero exit after bytes were sent is only logged;
        headers are already committed at that point.
        """
        process = session.process
        log_url = safe_url(session.url)
        sent = 0
        finished = False
        try:
            async with aclosing(process.iter_chunks(session.chunk_size)) as chunks:
                async for chunk in chunks:
                    sent += len(chunk)
                    yield chunk

            returncode = await process.wait()
            finished = True
            if returncode == 0:
                logger.info(f"Download complete: {sent:,} bytes for {log_url}")
            else:
                logger.error(
                    f"yt-dlp download failed ({returncode}) after {sent:,} bytes "
                    f"for {log_url}: {process.stderr_tail[-500:]}"
                )
        finally:
            if not finished:
                logger.info(
                    f"Download for {log_url} stopped after {sent:,} bytes; "
                    f"terminating yt-dlp"
                )
            process.terminate()
