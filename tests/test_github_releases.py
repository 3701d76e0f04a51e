from __future__ import annotations

import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from toolbridge.github_releases import GitHubReleases, build_download_url


@pytest.mark.asyncio
async def test_latest_version_reads_tag_name() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"tag_name": "bun-v1.1.30", "name": "Bun v1.1.30"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tag = await GitHubReleases(client).latest_version("oven-sh", "bun")

    assert tag == "bun-v1.1.30"
    assert seen == ["https://api.github.com/repos/oven-sh/bun/releases/latest"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(403, json={"message": "rate limited"}),
        httpx.Response(200, json={"name": "no tag"}),
        httpx.Response(200, content=b"<html>"),
    ],
)
async def test_latest_version_failures_return_none(response: httpx.Response) -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response)) as client:
        assert await GitHubReleases(client).latest_version("astral-sh", "uv") is None


def test_download_url_default_host() -> None:
    assert (
        build_download_url("astral-sh", "uv", "0.4.18", "uv-x86_64-unknown-linux-gnu.zip")
        == "https://github.com/astral-sh/uv/releases/download/0.4.18/uv-x86_64-unknown-linux-gnu.zip"
    )


def test_download_url_with_mirror() -> None:
    releases = GitHubReleases()
    url = releases.download_url("oven-sh", "bun", "bun-v1.1.30", "bun-linux-x64.zip", "https://mirror.example/gh/")
    assert url == "https://mirror.example/gh/oven-sh/bun/releases/download/bun-v1.1.30/bun-linux-x64.zip"
