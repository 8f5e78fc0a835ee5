"""HTTP client wrapper used to check and fetch media referenced by source items."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

FETCH_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


@dataclass
class AssetFetchConfig:
    timeout: float = 5.0
    user_agent: str = "itemgen-asset-resolver"
    follow_redirects: bool = True


class AssetHttpClient:
    """Thin sync client; one instance is shared by every resolver worker thread."""

    def __init__(
        self,
        config: AssetFetchConfig | None = None,
        *,
        client: httpx.Client | None = None,
    ) -> None:
        self._config = config or AssetFetchConfig()
        if client is None:
            self._client = httpx.Client(
                timeout=self._config.timeout,
                follow_redirects=self._config.follow_redirects,
                headers={"User-Agent": self._config.user_agent},
            )
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    @property
    def timeout(self) -> float:
        return self._config.timeout

    def exists(self, url: str) -> bool:
        """HEAD the URL; True for any 2xx answer. Transport errors propagate."""

        response = self._client.head(url, timeout=self._config.timeout)
        return response.is_success

    def fetch_text(self, url: str) -> str:
        """GET the URL and return its body as text, raising on non-2xx answers."""

        response = self._client.get(url, timeout=self._config.timeout)
        response.raise_for_status()
        return response.text

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "AssetHttpClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


__all__ = ["AssetFetchConfig", "AssetHttpClient", "FETCH_ERRORS"]
