"""Media discovery and resolution for source items.

Two kinds of references are recognised inside any string of the source:

* legacy ``web+graphie://host/path`` links with no extension, resolved by
  trying ``.svg``, ``.png``, ``.jpeg``, ``.jpg`` and ``.gif`` in that order;
* direct ``http(s)`` links ending in one of those extensions.

SVG bodies are fetched and inlined as supplementary text; everything else is
passed through as a raster reference. Per-URL failures are logged and the URL
contributes nothing.

HTML sources are parsed with BeautifulSoup. Every ``<img>`` must carry an
absolute http(s) ``src``; anything else rejects the whole source.
"""

from __future__ import annotations

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Iterable, List, Literal, Optional, Sequence
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from itemgen.core.config import ResourceLimits
from itemgen.core.envelope import Envelope, ImagePayload
from itemgen.core.errors import MalformedSourceError, UnsupportedURISchemeError

from .http_client import FETCH_ERRORS, AssetFetchConfig, AssetHttpClient

LOGGER = logging.getLogger(__name__)

LEGACY_SCHEME = "web+graphie://"
LEGACY_EXTENSIONS = ("svg", "png", "jpeg", "jpg", "gif")

_URL_TAIL = r"[^\s\"'<>()\[\]{}]"
LEGACY_URL_RE = re.compile(r"web\+graphie://" + _URL_TAIL + r"+")
DIRECT_URL_RE = re.compile(
    r"https?://" + _URL_TAIL + r"+?\.(?:svg|png|jpe?g|gif)(?:\?" + _URL_TAIL + r"*)?(?=$|[\s\"'<>()\[\]{}])",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class Resolution:
    kind: Literal["vector", "raster"]
    url: str
    svg: str | None = None


def traceability_prefix(url: str, svg: str) -> str:
    return f"<!-- URL: {url} -->\n{svg}"


def is_svg_url(url: str) -> bool:
    return urlsplit(url).path.lower().endswith(".svg")


def iter_strings(value: Any) -> Iterable[str]:
    """Yield every string found anywhere in a nested JSON-like value."""

    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_strings(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_strings(item)


def discover_urls(source: Any) -> List[str]:
    """Legacy and direct media URLs in discovery order, without duplicates."""

    found: dict[str, None] = {}
    for text in iter_strings(source):
        for match in LEGACY_URL_RE.finditer(text):
            found.setdefault(match.group(0), None)
        for match in DIRECT_URL_RE.finditer(text):
            found.setdefault(match.group(0), None)
    return list(found)


def http_url(url: str) -> str:
    """Return ``url`` normalised when it is an absolute http(s) URL; raise otherwise."""

    try:
        parts = urlsplit(url.strip())
    except ValueError as exc:
        raise UnsupportedURISchemeError(url, "<invalid>") from exc
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        raise UnsupportedURISchemeError(url, parts.scheme or "<none>")
    return parts.geturl()


def extract_img_sources(html: str) -> List[str]:
    """``<img src>`` values in document order, without duplicates.

    A tag without a usable ``src`` raises :class:`MalformedSourceError`; a
    relative or non-http(s) ``src`` raises :class:`UnsupportedURISchemeError`.
    """

    sources: dict[str, None] = {}
    for tag in BeautifulSoup(html, "html.parser").find_all("img"):
        raw = tag.get("src")
        if not isinstance(raw, str) or not raw.strip():
            LOGGER.error("img tag missing src attribute", extra={"tag": str(tag)})
            raise MalformedSourceError(f"img tag missing src: {tag}")
        try:
            url = http_url(raw)
        except UnsupportedURISchemeError:
            LOGGER.error("unsupported image url in html", extra={"src": raw})
            raise
        sources.setdefault(url, None)
    return list(sources)


def validate_screenshot_url(url: str) -> str:
    return http_url(url)


class AssetResolver:
    """Resolves media references into an :class:`Envelope` with a bounded worker pool."""

    def __init__(
        self,
        client: AssetHttpClient | None = None,
        *,
        limits: ResourceLimits | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.limits = limits or ResourceLimits()
        if client is None:
            self._client = AssetHttpClient(AssetFetchConfig(timeout=self.limits.fetch_timeout_seconds))
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False
        self.logger = logger or LOGGER

    # ------------------------------------------------------------------
    # Public API

    def resolve(self, source: Any, *, image_payloads: Sequence[ImagePayload] = ()) -> Envelope:
        """Build an envelope from a nested source document."""

        primary = json.dumps(source if source else {}, indent=2, ensure_ascii=False)
        return self._build(primary, discover_urls(source), image_payloads=image_payloads)

    def resolve_html(
        self,
        html: str,
        *,
        screenshot_url: str | None = None,
        image_payloads: Sequence[ImagePayload] = (),
    ) -> Envelope:
        """Build an envelope from an HTML fragment plus an optional screenshot reference."""

        extra_raster: List[str] = []
        if screenshot_url:
            extra_raster.append(validate_screenshot_url(screenshot_url))
        return self._build(
            html,
            extract_img_sources(html),
            extra_raster=extra_raster,
            image_payloads=image_payloads,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "AssetResolver":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Resolution

    def _build(
        self,
        primary: str,
        urls: Sequence[str],
        *,
        extra_raster: Sequence[str] = (),
        image_payloads: Sequence[ImagePayload] = (),
    ) -> Envelope:
        resolutions = self.resolve_all(urls)
        supplementary: List[str] = []
        vector_urls: set[str] = set()
        raster_urls: set[str] = set()
        for res in resolutions:
            if res is None:
                continue
            if res.kind == "raster":
                raster_urls.add(res.url)
            elif res.url not in vector_urls:
                vector_urls.add(res.url)
                supplementary.append(traceability_prefix(res.url, res.svg or ""))
        raster_urls.update(url for url in extra_raster if url not in vector_urls)

        self.logger.info(
            "resolved media references",
            extra={
                "found": len(urls),
                "resolved": sum(1 for res in resolutions if res),
                "rasters": len(raster_urls),
                "svgs": len(vector_urls),
            },
        )
        return Envelope(
            primary_content=primary,
            supplementary_content=supplementary,
            raster_image_urls=sorted(raster_urls),
            vector_image_urls=sorted(vector_urls),
            image_payloads=list(image_payloads),
        )

    def resolve_all(self, urls: Sequence[str]) -> List[Optional[Resolution]]:
        """Resolve every URL concurrently; results line up with ``urls``."""

        results: List[Optional[Resolution]] = [None] * len(urls)
        if not urls:
            return results
        workers = min(self.limits.max_concurrent_fetches, len(urls))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(self.resolve_one, url): index for index, url in enumerate(urls)}
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        return results

    def resolve_one(self, url: str) -> Optional[Resolution]:
        try:
            if url.startswith(LEGACY_SCHEME):
                resolution = self._resolve_legacy(url)
            elif is_svg_url(url):
                resolution = Resolution("vector", url, self._client.fetch_text(url))
            else:
                resolution = Resolution("raster", url)
        except Exception as exc:
            self.logger.warning(
                "failed to resolve media url, skipping",
                extra={"url": url, "error": str(exc), "error_type": type(exc).__name__},
            )
            return None
        if resolution is None:
            self.logger.warning("failed to resolve media url, skipping", extra={"url": url})
        return resolution

    def _resolve_legacy(self, url: str) -> Optional[Resolution]:
        base = "https://" + url[len(LEGACY_SCHEME):]
        for ext in LEGACY_EXTENSIONS:
            candidate = f"{base}.{ext}"
            try:
                if not self._client.exists(candidate):
                    continue
                if ext == "svg":
                    return Resolution("vector", candidate, self._client.fetch_text(candidate))
            except FETCH_ERRORS as exc:
                self.logger.debug("candidate check failed", extra={"url": candidate, "error": str(exc)})
                continue
            return Resolution("raster", candidate)
        return None


__all__ = [
    "AssetResolver",
    "DIRECT_URL_RE",
    "LEGACY_URL_RE",
    "LEGACY_EXTENSIONS",
    "Resolution",
    "discover_urls",
    "extract_img_sources",
    "http_url",
    "traceability_prefix",
    "validate_screenshot_url",
]
