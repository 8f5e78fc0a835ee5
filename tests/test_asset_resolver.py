import threading
import time
from typing import Callable, Dict, List, Tuple

import httpx
import pytest

from apps.assets import AssetHttpClient, AssetResolver, discover_urls, extract_img_sources
from itemgen.core.config import ResourceLimits
from itemgen.core.errors import MalformedSourceError, UnsupportedURISchemeError

Route = Tuple[str, str]


def _resolver(
    routes: Dict[Route, httpx.Response | Callable[[httpx.Request], httpx.Response]],
    *,
    limits: ResourceLimits | None = None,
) -> Tuple[AssetResolver, List[Route]]:
    seen: List[Route] = []

    def handler(request: httpx.Request) -> httpx.Response:
        key = (request.method, str(request.url))
        seen.append(key)
        route = routes.get(key)
        if route is None:
            return httpx.Response(404)
        if callable(route):
            return route(request)
        return route

    client = AssetHttpClient(client=httpx.Client(transport=httpx.MockTransport(handler)))
    return AssetResolver(client, limits=limits), seen


def test_legacy_url_resolves_to_svg_first() -> None:
    base = "https://ka.example.com/images/abc"
    resolver, seen = _resolver(
        {
            ("HEAD", f"{base}.svg"): httpx.Response(200),
            ("GET", f"{base}.svg"): httpx.Response(200, text="<svg/>"),
        }
    )

    envelope = resolver.resolve({"question": {"content": "![](web+graphie://ka.example.com/images/abc)"}})

    assert envelope.vector_image_urls == [f"{base}.svg"]
    assert envelope.raster_image_urls == []
    assert envelope.supplementary_content == [f"<!-- URL: {base}.svg -->\n<svg/>"]
    assert seen == [("HEAD", f"{base}.svg"), ("GET", f"{base}.svg")]


def test_legacy_url_falls_through_to_first_raster() -> None:
    base = "https://ka.example.com/images/abc"
    resolver, seen = _resolver(
        {
            ("HEAD", f"{base}.png"): httpx.Response(404),
            ("HEAD", f"{base}.jpeg"): httpx.Response(200),
            ("HEAD", f"{base}.jpg"): httpx.Response(200),
        }
    )

    envelope = resolver.resolve(["web+graphie://ka.example.com/images/abc"])

    assert envelope.raster_image_urls == [f"{base}.jpeg"]
    assert envelope.vector_image_urls == []
    assert ("HEAD", f"{base}.jpg") not in seen
    assert all(method == "HEAD" for method, _ in seen)


def test_svg_fetch_failure_falls_through_to_next_extension() -> None:
    base = "https://ka.example.com/images/abc"
    resolver, _ = _resolver(
        {
            ("HEAD", f"{base}.svg"): httpx.Response(200),
            ("GET", f"{base}.svg"): httpx.Response(500),
            ("HEAD", f"{base}.png"): httpx.Response(200),
        }
    )

    envelope = resolver.resolve({"content": "web+graphie://ka.example.com/images/abc"})

    assert envelope.vector_image_urls == []
    assert envelope.raster_image_urls == [f"{base}.png"]
    assert envelope.supplementary_content == []


def test_legacy_url_with_no_candidates_contributes_nothing() -> None:
    resolver, seen = _resolver({})

    envelope = resolver.resolve({"content": "web+graphie://ka.example.com/images/missing"})

    assert envelope.raster_image_urls == []
    assert envelope.vector_image_urls == []
    assert len(seen) == 5


def test_direct_svg_fetch_failure_is_dropped() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    resolver, _ = _resolver({("GET", "https://cdn.example.com/broken.svg"): refuse})

    envelope = resolver.resolve({"content": "https://cdn.example.com/broken.svg and https://cdn.example.com/ok.png"})

    assert envelope.vector_image_urls == []
    assert envelope.raster_image_urls == ["https://cdn.example.com/ok.png"]


def test_direct_svg_match_is_case_insensitive_and_keeps_query() -> None:
    url = "https://cdn.example.com/Chart.SVG?cache=1"
    resolver, _ = _resolver({("GET", url): httpx.Response(200, text="<svg id='chart'/>")})

    envelope = resolver.resolve({"content": f"see {url} for the chart"})

    assert envelope.vector_image_urls == [url]
    assert envelope.supplementary_content[0].startswith(f"<!-- URL: {url} -->\n")


def test_raster_links_are_not_fetched_and_lists_are_sorted() -> None:
    resolver, seen = _resolver({})

    envelope = resolver.resolve(
        {
            "a": "https://cdn.example.com/b.png",
            "b": ["https://cdn.example.com/a.jpg", "https://cdn.example.com/b.png"],
            "c": {"deep": "https://cdn.example.com/c.GIF"},
        }
    )

    assert envelope.raster_image_urls == [
        "https://cdn.example.com/a.jpg",
        "https://cdn.example.com/b.png",
        "https://cdn.example.com/c.GIF",
    ]
    assert seen == []


def test_supplementary_content_keeps_discovery_order() -> None:
    resolver, _ = _resolver(
        {
            ("GET", "https://cdn.example.com/z.svg"): httpx.Response(200, text="<svg id='z'/>"),
            ("GET", "https://cdn.example.com/a.svg"): httpx.Response(200, text="<svg id='a'/>"),
        }
    )

    envelope = resolver.resolve(["https://cdn.example.com/z.svg", "https://cdn.example.com/a.svg"])

    assert envelope.vector_image_urls == ["https://cdn.example.com/a.svg", "https://cdn.example.com/z.svg"]
    assert [entry.splitlines()[1] for entry in envelope.supplementary_content] == ["<svg id='z'/>", "<svg id='a'/>"]


def test_empty_source_serializes_to_empty_object() -> None:
    resolver, seen = _resolver({})

    assert resolver.resolve(None).primary_content == "{}"
    assert resolver.resolve({}).primary_content == "{}"
    assert seen == []


def test_html_images_and_screenshot_are_raster_inputs() -> None:
    html = '<p>Look <img src="https://cdn.example.com/p.png"><img alt="twice" src="https://cdn.example.com/p.png"></p>'
    resolver, _ = _resolver({})

    envelope = resolver.resolve_html(html, screenshot_url="https://shots.example.com/render.png")

    assert envelope.primary_content == html
    assert envelope.raster_image_urls == ["https://cdn.example.com/p.png", "https://shots.example.com/render.png"]


def test_html_img_without_src_rejects_the_source() -> None:
    resolver, seen = _resolver({})

    with pytest.raises(MalformedSourceError):
        resolver.resolve_html('<p><img src="https://cdn.example.com/p.png"><img alt="no src"></p>')
    with pytest.raises(MalformedSourceError):
        extract_img_sources('<img src="  ">')
    assert seen == []


@pytest.mark.parametrize(
    "src",
    ["/relative.png", "img/b.png", "data:image/png;base64,AAA", "web+graphie://ka.example.com/x", "ftp://cdn.example.com/a.png"],
)
def test_html_img_with_non_http_src_rejects_the_source(src: str) -> None:
    with pytest.raises(UnsupportedURISchemeError) as excinfo:
        extract_img_sources(f'<p><img src="https://cdn.example.com/a.png"><img src="{src}"></p>')

    assert excinfo.value.url == src


def test_html_screenshot_url_must_be_http() -> None:
    resolver, _ = _resolver({})

    with pytest.raises(UnsupportedURISchemeError):
        resolver.resolve_html("<p>hi</p>", screenshot_url="file:///tmp/shot.png")


def test_fetches_are_bounded_by_worker_pool() -> None:
    lock = threading.Lock()
    active = {"now": 0, "peak": 0}

    def slow_svg(request: httpx.Request) -> httpx.Response:
        with lock:
            active["now"] += 1
            active["peak"] = max(active["peak"], active["now"])
        time.sleep(0.02)
        with lock:
            active["now"] -= 1
        return httpx.Response(200, text="<svg/>")

    urls = [f"https://cdn.example.com/{index}.svg" for index in range(6)]
    resolver, _ = _resolver({("GET", url): slow_svg for url in urls}, limits=ResourceLimits(max_concurrent_fetches=2))

    envelope = resolver.resolve(urls)

    assert len(envelope.vector_image_urls) == 6
    assert active["peak"] <= 2


def test_discover_urls_dedupes_in_order() -> None:
    source = {
        "q": "web+graphie://ka.example.com/x and https://cdn.example.com/a.png",
        "hints": ["https://cdn.example.com/a.png", "web+graphie://ka.example.com/x", "https://cdn.example.com/page.html"],
    }

    assert discover_urls(source) == ["web+graphie://ka.example.com/x", "https://cdn.example.com/a.png"]


def test_extract_img_sources_reads_the_src_attribute_only() -> None:
    html = (
        '<img data-src="https://lazy.example.com/a.png" src="https://real.example.com/b.png">'
        "<img src=https://cdn.example.com/c.png>"
        "<IMG SRC='https://cdn.example.com/d.png' />"
    )

    assert extract_img_sources(html) == [
        "https://real.example.com/b.png",
        "https://cdn.example.com/c.png",
        "https://cdn.example.com/d.png",
    ]


def test_first_discovered_svg_finishing_last_keeps_discovery_order() -> None:
    second_done = threading.Event()
    finished: List[str] = []

    def first(request: httpx.Request) -> httpx.Response:
        assert second_done.wait(timeout=5)
        finished.append("z")
        return httpx.Response(200, text="<svg id='z'/>")

    def second(request: httpx.Request) -> httpx.Response:
        finished.append("a")
        second_done.set()
        return httpx.Response(200, text="<svg id='a'/>")

    urls = ["https://cdn.example.com/z.svg", "https://cdn.example.com/a.svg"]
    resolver, _ = _resolver(
        {("GET", urls[0]): first, ("GET", urls[1]): second},
        limits=ResourceLimits(max_concurrent_fetches=2),
    )

    envelope = resolver.resolve({"content": f"{urls[0]} then {urls[1]}"})

    assert finished == ["a", "z"]
    assert envelope.vector_image_urls == ["https://cdn.example.com/a.svg", "https://cdn.example.com/z.svg"]
    assert [entry.splitlines()[0] for entry in envelope.supplementary_content] == [
        f"<!-- URL: {urls[0]} -->",
        f"<!-- URL: {urls[1]} -->",
    ]


def test_unexpected_error_for_one_url_does_not_abort_the_rest() -> None:
    def explode(request: httpx.Request) -> httpx.Response:
        raise RuntimeError("transport bug")

    resolver, _ = _resolver(
        {
            ("GET", "https://cdn.example.com/bad.svg"): explode,
            ("GET", "https://cdn.example.com/good.svg"): httpx.Response(200, text="<svg/>"),
        }
    )

    envelope = resolver.resolve(["https://cdn.example.com/bad.svg", "https://cdn.example.com/good.svg", "https://cdn.example.com/p.png"])

    assert envelope.vector_image_urls == ["https://cdn.example.com/good.svg"]
    assert envelope.raster_image_urls == ["https://cdn.example.com/p.png"]
    assert resolver.resolve_one("https://cdn.example.com/bad.svg") is None
