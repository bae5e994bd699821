"""Image loader - resolves image payloads and decodes them into raster buffers."""

import asyncio
import base64
import binascii
import ipaddress
import logging
import socket

import cv2
import httpx
import numpy as np

from cell_extractor.core.exceptions import DecodeError
from cell_extractor.core.settings.app_settings import FetchSettings
from cell_extractor.enums import ImageFormat
from cell_extractor.models import RasterBuffer

logger = logging.getLogger(__name__)

# Encoded bytes, a "data:" URL or an http(s) URL
ImagePayload = bytes | str

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


def decode_data_url(data_url: str) -> bytes:
    """
    Decode a base64 "data:" URL into raw bytes.

    Args:
        data_url (str): URL such as "data:image/png;base64,iVBOR...".

    Returns:
        bytes: Decoded payload.

    Raises:
        DecodeError: If the URL is not base64 encoded or is malformed.
    """
    header, separator, encoded = data_url.partition(",")
    if not separator or not header.endswith(";base64"):
        raise DecodeError("Only base64 data URLs are supported")

    try:
        return base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError) as e:
        raise DecodeError("Malformed base64 data URL") from e


def decode_image(data: bytes) -> RasterBuffer:
    """
    Decode encoded image bytes into a raster buffer.

    Args:
        data (bytes): Encoded image (PNG, JPEG, WebP, ...).

    Returns:
        RasterBuffer: Decoded pixels and brightness plane.

    Raises:
        DecodeError: If the bytes cannot be decoded or yield an empty image.
    """
    if not data:
        raise DecodeError("Empty image payload")

    nparr = np.frombuffer(buffer=data, dtype=np.uint8)
    try:
        image = cv2.imdecode(buf=nparr, flags=cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise DecodeError("Failed to decode image") from e

    if image is None or image.size == 0:
        raise DecodeError("Failed to decode image")

    brightness = image.astype(np.float32).sum(axis=2) / 3.0
    logger.debug(f"Decoded image {image.shape[1]}x{image.shape[0]}")

    return RasterBuffer(
        image=image,
        brightness=brightness,
        source_format=ImageFormat.sniff(data),
    )


def is_public_address(address: IPAddress) -> bool:
    """Return True for globally routable unicast addresses."""
    return address.is_global and not address.is_multicast


async def resolve_host(host: str) -> list[IPAddress]:
    """
    Resolve a host name or IP literal to its addresses.

    Args:
        host (str): Host part of a URL.

    Returns:
        list[IPAddress]: Every address the host resolves to.

    Raises:
        DecodeError: If the host name cannot be resolved.
    """
    try:
        return [ipaddress.ip_address(host)]
    except ValueError:
        logger.debug(f"Resolving host {host}")

    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise DecodeError(f"Could not resolve host {host}") from e
    return [ipaddress.ip_address(info[4][0]) for info in infos]


class ImageLoader:
    """Resolves image payloads to bytes, fetching remote images when needed."""

    def __init__(
        self,
        settings: FetchSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the image loader.

        Args:
            settings (FetchSettings): Remote fetch configuration.
            transport (httpx.AsyncBaseTransport | None): Optional transport override.
        """
        self.settings = settings
        self._transport = transport

    async def check_url(self, url: httpx.URL) -> None:
        """
        Enforce the fetch policy on a single request URL.

        Every request of a fetch goes through here, redirect hops included.

        Args:
            url (httpx.URL): URL about to be requested.

        Raises:
            DecodeError: If the scheme, host or resolved address is not allowed.
        """
        if url.scheme not in ("http", "https"):
            raise DecodeError("Unsupported image reference")

        host = url.host.lower()
        if not host:
            raise DecodeError("Image URL has no host")

        allowed_hosts = self.settings.allowed_hosts
        if allowed_hosts and host not in allowed_hosts:
            logger.warning(f"Refusing to fetch from host not in allow list: {host}")
            raise DecodeError(f"Host {host} is not allowed")

        if self.settings.allow_private_networks:
            return

        addresses = await resolve_host(host)
        if not addresses or not all(is_public_address(address) for address in addresses):
            logger.warning(f"Refusing to fetch from non-public host: {host}")
            raise DecodeError(f"Host {host} resolves to a non-public address")

    async def _check_request(self, request: httpx.Request) -> None:
        await self.check_url(request.url)

    async def fetch_bytes(self, url: str) -> bytes:
        """
        Download an image over http(s).

        The body is streamed and abandoned as soon as it grows past
        ``max_bytes``.

        Args:
            url (str): Image URL.

        Returns:
            bytes: Response body.

        Raises:
            DecodeError: If fetching is disabled, the host is refused, the
                request fails or the body is too large.
        """
        if not self.settings.allow_remote:
            raise DecodeError("Remote image fetching is disabled")

        max_bytes = self.settings.max_bytes
        too_large = f"Fetched image exceeds maximum size of {max_bytes} bytes"
        content = bytearray()
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout,
                transport=self._transport,
                follow_redirects=True,
                max_redirects=self.settings.max_redirects,
                event_hooks={"request": [self._check_request]},
            ) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()

                    declared = response.headers.get("Content-Length", "")
                    if declared.isdigit() and int(declared) > max_bytes:
                        raise DecodeError(too_large)

                    async for chunk in response.aiter_bytes():
                        content.extend(chunk)
                        if len(content) > max_bytes:
                            raise DecodeError(too_large)
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error fetching image: {e}")
            raise DecodeError("Failed to fetch image") from e
        except httpx.RequestError as e:
            logger.error(f"Request error fetching image: {e}")
            raise DecodeError("Failed to fetch image") from e
        except httpx.InvalidURL as e:
            raise DecodeError("Malformed image URL") from e

        return bytes(content)

    async def resolve(self, payload: ImagePayload) -> bytes:
        """
        Turn any supported payload into encoded image bytes.

        Args:
            payload (ImagePayload): Raw bytes, a data URL, or an http(s) URL.

        Returns:
            bytes: Encoded image bytes.

        Raises:
            DecodeError: If the payload type or reference is unsupported.
        """
        if isinstance(payload, (bytes, bytearray, memoryview)):
            return bytes(payload)

        reference = payload.strip()
        if reference.startswith("data:"):
            return decode_data_url(reference)
        if reference.startswith(("http://", "https://")):
            return await self.fetch_bytes(reference)

        raise DecodeError("Unsupported image reference")

    async def load(self, payload: ImagePayload) -> RasterBuffer:
        """
        Resolve and decode a payload.

        Args:
            payload (ImagePayload): Raw bytes, a data URL, or an http(s) URL.

        Returns:
            RasterBuffer: Decoded raster.
        """
        data = await self.resolve(payload)
        return decode_image(data)
