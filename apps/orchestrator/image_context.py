"""Resource guard for visual context sent to the generation backend."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import List
from urllib.parse import urlsplit

from itemgen.core.config import ResourceLimits
from itemgen.core.envelope import Envelope
from itemgen.core.errors import ResourceLimitExceededError, UnsupportedURISchemeError

LOGGER = logging.getLogger(__name__)

ACCEPTED_IMAGE_SCHEMES = ("http", "https", "data")


@dataclass(slots=True)
class ImageContext:
    image_urls: List[str] = field(default_factory=list)
    payload_bytes: int = 0


def resolve_image_context(envelope: Envelope, limits: ResourceLimits) -> ImageContext:
    """Validate image references and enforce per-request caps.

    Raw payloads are inlined as ``data:`` URLs. Nothing here touches the
    network; failing fast means the backend is never called.
    """

    image_urls: List[str] = []
    total_bytes = 0

    for url in envelope.multimodal_image_urls:
        scheme = urlsplit(url).scheme.lower()
        if scheme not in ACCEPTED_IMAGE_SCHEMES:
            LOGGER.error("unsupported url scheme in image context", extra={"url": url, "scheme": scheme})
            raise UnsupportedURISchemeError(url, scheme or "<none>")
        if scheme == "data":
            total_bytes += len(url)
        image_urls.append(url)

    for payload in envelope.image_payloads:
        total_bytes += len(payload.data)
        encoded = base64.b64encode(payload.data).decode("ascii")
        image_urls.append(f"data:{payload.mime_type};base64,{encoded}")

    if len(image_urls) > limits.max_images_per_request:
        LOGGER.error(
            "too many image inputs for request",
            extra={"count": len(image_urls), "max": limits.max_images_per_request},
        )
        raise ResourceLimitExceededError(
            f"too many image inputs for request: {len(image_urls)} > {limits.max_images_per_request}",
            limit=limits.max_images_per_request,
            observed=len(image_urls),
        )
    if total_bytes > limits.max_image_payload_bytes:
        LOGGER.error(
            "image payload size over per-request cap",
            extra={"bytes": total_bytes, "cap": limits.max_image_payload_bytes},
        )
        raise ResourceLimitExceededError(
            f"image payload size over per-request cap: {total_bytes} > {limits.max_image_payload_bytes}",
            limit=limits.max_image_payload_bytes,
            observed=total_bytes,
        )
    return ImageContext(image_urls=image_urls, payload_bytes=total_bytes)


__all__ = ["ACCEPTED_IMAGE_SCHEMES", "ImageContext", "resolve_image_context"]
