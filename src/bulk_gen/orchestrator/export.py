"""Download generated artifacts of succeeded items to a local directory."""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

from bulk_gen.config import DEFAULT_API_BASE_URL
from bulk_gen.orchestrator.models import WorkItemStatus, WorkItemView

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5


@dataclass(slots=True)
class ExportSummary:
    """Outcome of one export pass."""

    exported: list[Path] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    message: str | None = None


class ArtifactExporter:
    """Save each succeeded item's artifact as ``video_<item_id>.mp4``.

    Downloads are staggered by ``stagger_seconds`` so a large batch does not
    hammer the artifact host. ``file://`` URIs are copied instead of fetched.
    Each file is written under a ``.part`` name and only renamed into place
    once complete. Redirects are followed by hand so the API key is attached
    per request, and only for the host of ``api_base_url``.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        output_dir: Path,
        stagger_seconds: float = 0.3,
        api_key: str = "",
        api_base_url: str = DEFAULT_API_BASE_URL,
        timeout_seconds: float = 120.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.output_dir = output_dir
        self.stagger_seconds = stagger_seconds
        self._sleep = sleep
        self._api_key = api_key
        self._api_host = httpx.URL(api_base_url).host
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            transport=transport,
            follow_redirects=False,
        )

    def export(self, items: Iterable[WorkItemView]) -> ExportSummary:
        succeeded = [
            item
            for item in items
            if item.status == WorkItemStatus.SUCCEEDED and item.result is not None
        ]
        summary = ExportSummary()
        if not succeeded:
            summary.message = "No successful videos to download."
            return summary

        self.output_dir.mkdir(parents=True, exist_ok=True)
        for index, item in enumerate(succeeded):
            if index and self.stagger_seconds > 0:
                self._sleep(self.stagger_seconds)
            target = self.output_dir / f"video_{item.item_id}.mp4"
            try:
                self._save(item.result.uri, target)
            except (httpx.HTTPError, OSError) as error:
                logger.warning("Export failed for %s: %s", item.item_id, error)
                summary.errors[item.item_id] = str(error)
                continue
            summary.exported.append(target)
        summary.message = f"Exported {len(summary.exported)} of {len(succeeded)} video(s)."
        return summary

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ArtifactExporter:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _save(self, uri: str, target: Path) -> None:
        partial = target.with_name(target.name + ".part")
        try:
            parsed = urlparse(uri)
            if parsed.scheme == "file":
                shutil.copyfile(Path(unquote(parsed.path)), partial)
            else:
                self._download(httpx.URL(uri), partial)
            partial.replace(target)
        finally:
            partial.unlink(missing_ok=True)

    def _download(self, url: httpx.URL, target: Path) -> None:
        for _ in range(MAX_REDIRECTS + 1):
            request = self._client.build_request("GET", url, headers=self._key_headers(url))
            response = self._client.send(request, stream=True)
            try:
                if response.is_redirect:
                    url = url.join(response.headers["location"])
                    continue
                response.raise_for_status()
                with target.open("wb") as handle:
                    for chunk in response.iter_bytes():
                        handle.write(chunk)
                return
            finally:
                response.close()
        raise httpx.TooManyRedirects(f"More than {MAX_REDIRECTS} redirects for {url}")

    def _key_headers(self, url: httpx.URL) -> dict[str, str]:
        """Attach the API key only for requests to the generation API host."""

        if self._api_key and url.host == self._api_host:
            return {"x-goog-api-key": self._api_key}
        return {}
