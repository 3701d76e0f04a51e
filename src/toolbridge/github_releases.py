from __future__ import annotations

import logging

import httpx

log = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
GITHUB_HOST = "https://github.com"

_HEADERS = {
    "User-Agent": "toolbridge/0.1.0",
    "Accept": "application/vnd.github+json",
}


class GitHubReleases:
    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        api_base: str = GITHUB_API,
        timeout: float = 15.0,
    ) -> None:
        self._client = client
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    async def latest_version(self, owner: str, project: str) -> str | None:
        """Return the tag of the latest release, or ``None`` if it cannot be determined.

        ``None`` means resolution failed; it does not mean the project has no
        releases.
        """
        url = f"{self.api_base}/repos/{owner}/{project}/releases/latest"
        log.debug("Fetching latest release of %s/%s", owner, project)
        try:
            payload = await self._get_json(url)
        except (httpx.HTTPError, ValueError) as exc:
            log.error("Failed to fetch latest release of %s/%s: %s", owner, project, exc)
            return None
        tag = payload.get("tag_name") if isinstance(payload, dict) else None
        if not isinstance(tag, str) or not tag:
            log.error("Latest release of %s/%s has no tag_name", owner, project)
            return None
        log.debug("Latest release of %s/%s: %s", owner, project, tag)
        return tag

    def download_url(
        self,
        owner: str,
        project: str,
        version: str,
        filename: str,
        mirror: str | None = None,
    ) -> str:
        return build_download_url(owner, project, version, filename, mirror)

    async def _get_json(self, url: str) -> object:
        if self._client is not None:
            response = await self._client.get(url, headers=_HEADERS)
            response.raise_for_status()
            return response.json()
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            response = await client.get(url, headers=_HEADERS)
            response.raise_for_status()
            return response.json()


def build_download_url(
    owner: str,
    project: str,
    version: str,
    filename: str,
    mirror: str | None = None,
) -> str:
    base = (mirror or GITHUB_HOST).rstrip("/")
    return f"{base}/{owner}/{project}/releases/download/{version}/{filename}"
