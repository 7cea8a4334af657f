"""
Catalog Downloader Service

Streams the compressed catalog from a mirror into a StreamDecoder while it
arrives, and fetches the mirror list document. Separated from the sync state
machine for better testability.
"""
import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from mediathek.exceptions import TransportError
from mediathek.services.mirror_service import MirrorSelector
from mediathek.services.stream_decoder import StreamDecoder
from mediathek.utils.logging_helpers import sanitize_url


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_initial: float = 1.0
    backoff_multiplier: float = 2.0
    backoff_max: float = 30.0

    def delay(self, attempt: int) -> float:
        """Wait before the attempt following `attempt` (0-based)"""
        return min(self.backoff_initial * self.backoff_multiplier ** attempt, self.backoff_max)


@dataclass(slots=True)
class DownloadResult:
    mirror: str
    attempts: int
    compressed_bytes: int
    decoded: bytearray


async def fetch_mirror_list_document(
    client: httpx.AsyncClient,
    url: str,
    user_agent: str,
) -> bytes:
    """
    Issue one request for the mirror list document

    Raises:
        TransportError: On network failure or an HTTP error status
    """
    logger.info(f"Requesting mirror list from {sanitize_url(url)}...")
    try:
        response = await client.get(url, headers={"User-Agent": user_agent})
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise TransportError(f"Mirror list request failed with HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise TransportError(f"Mirror list request failed: {type(e).__name__}: {e}") from e

    logger.debug(f"Mirror list received: {len(response.content)} bytes")
    return response.content


async def download_catalog(
    client: httpx.AsyncClient,
    mirrors: Sequence[str],
    selector: MirrorSelector,
    user_agent: str,
    retry: RetryPolicy | None = None,
) -> DownloadResult:
    """
    Download and decode the catalog from a randomly chosen mirror

    Every received chunk is fed into the decoder immediately. Transient network
    errors (timeouts, connection and read errors) and 5xx responses are retried
    with exponential backoff on a fresh decoder, preferring a mirror that has
    not failed yet. 4xx responses are not retried.

    Args:
        client: HTTP client used for the transfer
        mirrors: Known catalog mirrors
        selector: Random mirror choice
        user_agent: User-Agent header value
        retry: Retry policy

    Returns:
        The mirror used and the decoded catalog bytes

    Raises:
        TransportError: If every attempt failed
        DecodeError: If the received stream is corrupt or truncated
    """
    retry = retry or RetryPolicy()
    tried: set[str] = set()
    last_error: Exception | None = None

    for attempt in range(retry.max_attempts):
        mirror = selector.choose(mirrors, exclude=tried)
        tried.add(mirror)

        try:
            decoder = await _stream_into_decoder(client, mirror, user_agent)
            decoded = decoder.finish()
            logger.info(
                "Downloaded %.2f MB from %s, decoded %.2f MB",
                decoder.consumed / (1024 * 1024),
                sanitize_url(mirror),
                len(decoded) / (1024 * 1024),
            )
            return DownloadResult(
                mirror=mirror,
                attempts=attempt + 1,
                compressed_bytes=decoder.consumed,
                decoded=decoded,
            )

        except (httpx.TimeoutException, httpx.NetworkError) as e:
            # Transient network errors - retry
            last_error = e
            if attempt < retry.max_attempts - 1:
                wait_time = retry.delay(attempt)
                logger.warning(
                    f"Download attempt {attempt + 1}/{retry.max_attempts} from {sanitize_url(mirror)} "
                    f"failed (transient error): {type(e).__name__}. Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(f"Download failed after {retry.max_attempts} attempts (transient error)")

        except httpx.HTTPStatusError as e:
            # HTTP errors - don't retry on 4xx (client error), retry on 5xx (server error)
            if 400 <= e.response.status_code < 500:
                logger.error(f"HTTP {e.response.status_code} (client error) from {sanitize_url(mirror)}")
                raise TransportError(f"Catalog request failed with HTTP {e.response.status_code}") from e

            last_error = e
            if attempt < retry.max_attempts - 1:
                wait_time = retry.delay(attempt)
                logger.warning(
                    f"Download attempt {attempt + 1}/{retry.max_attempts} failed "
                    f"(HTTP {e.response.status_code} server error). "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(f"Download failed after {retry.max_attempts} attempts (HTTP {e.response.status_code})")

        except httpx.HTTPError as e:
            raise TransportError(f"Catalog transfer failed: {type(e).__name__}: {e}") from e

    raise TransportError(
        f"Catalog transfer failed after {retry.max_attempts} attempts: "
        f"{type(last_error).__name__}: {last_error}"
    )


async def _stream_into_decoder(
    client: httpx.AsyncClient,
    mirror: str,
    user_agent: str,
) -> StreamDecoder:
    decoder = StreamDecoder()
    logger.debug(f"Streaming catalog from {sanitize_url(mirror)}")

    async with client.stream("GET", mirror, headers={"User-Agent": user_agent}) as response:
        response.raise_for_status()
        async for chunk in response.aiter_bytes():
            decoder.feed(chunk)

    return decoder
