"""Streamed downloads and guarded zip extraction for helper-binary installs."""
from __future__ import annotations

import asyncio
import logging
import shutil
import zipfile
from pathlib import Path
from typing import Iterable

import httpx

from .errors import DownloadError, ExtractionError

log = logging.getLogger(__name__)

# Release assets are large; only connect/pool get a short limit.
_DOWNLOAD_TIMEOUT = httpx.Timeout(connect=15.0, read=120.0, write=15.0, pool=5.0)
_CHUNK_SIZE = 64 * 1024


class ArchiveFetcher:
    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def download(self, url: str, dest: str | Path, description: str | None = None) -> None:
        """Stream *url* into *dest* without buffering the body in memory.

        On failure a partially written file may be left behind; callers retry
        from scratch.
        """
        label = description or url
        dest = Path(dest)
        log.info("Downloading %s...", label)
        log.debug("Download URL: %s", url)
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            if self._client is not None:
                await self._stream_to(self._client, url, dest)
            else:
                async with httpx.AsyncClient(timeout=_DOWNLOAD_TIMEOUT, follow_redirects=True) as client:
                    await self._stream_to(client, url, dest)
        except httpx.HTTPStatusError as exc:
            log.error("Download failed: %s", exc)
            raise DownloadError(
                f"HTTP {exc.response.status_code} downloading {url}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            log.error("Download failed: %s", exc)
            raise DownloadError(f"Network error downloading {url}: {exc}") from exc
        except OSError as exc:
            log.error("Download failed: %s", exc)
            raise DownloadError(f"Cannot write {dest}: {exc}") from exc
        log.info("Downloaded %s", label)

    async def _stream_to(self, client: httpx.AsyncClient, url: str, dest: Path) -> None:
        async with client.stream("GET", url, follow_redirects=True) as response:
            response.raise_for_status()
            with dest.open("wb") as fh:
                async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                    fh.write(chunk)

    async def extract_zip(self, zip_path: str | Path, dest_dir: str | Path) -> list[Path]:
        """Extract *zip_path* into *dest_dir*, returning the files written.

        Entries resolving outside *dest_dir* are skipped.  A malformed archive
        raises :class:`ExtractionError` and may leave partial output behind.
        """
        log.info("Extracting %s to %s...", zip_path, dest_dir)
        try:
            written = await asyncio.to_thread(_extract_zip_sync, Path(zip_path), Path(dest_dir))
        except (zipfile.BadZipFile, OSError, EOFError, RuntimeError) as exc:
            log.error("Failed to extract %s: %s", zip_path, exc)
            raise ExtractionError(f"Failed to extract {zip_path}: {exc}") from exc
        log.info("Extracted %s (%d files)", zip_path, len(written))
        return written

    async def cleanup(self, paths: Iterable[str | Path]) -> None:
        for path in paths:
            try:
                await asyncio.to_thread(_remove, Path(path))
                log.debug("Removed %s", path)
            except Exception as exc:  # noqa: BLE001
                log.debug("Cleanup failed for %s: %s", path, exc)


def is_within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


def _extract_zip_sync(zip_path: Path, dest_dir: Path) -> list[Path]:
    dest_dir.mkdir(parents=True, exist_ok=True)
    root = dest_dir.resolve()
    written: list[Path] = []
    with zipfile.ZipFile(zip_path) as archive:
        for info in archive.infolist():
            target = (root / info.filename).resolve()
            if not is_within(target, root):
                log.warning("Skipping unsafe archive entry: %s", info.filename)
                continue
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info) as src, target.open("wb") as dst:
                shutil.copyfileobj(src, dst, _CHUNK_SIZE)
            written.append(target)
    return written


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()
