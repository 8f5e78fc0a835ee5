"""Media discovery and resolution for legacy source items."""
from .http_client import AssetFetchConfig, AssetHttpClient
from .resolver import AssetResolver, discover_urls, extract_img_sources

__all__ = [
    "AssetFetchConfig",
    "AssetHttpClient",
    "AssetResolver",
    "discover_urls",
    "extract_img_sources",
]
