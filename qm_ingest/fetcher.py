"""
Resolve a QM source reference to a local workbook file.

Local paths are used as-is. ``http(s)://`` URLs are downloaded into a fresh
temp file; redirects are followed by hand (so the same headers, usually an
auth cookie, go to every hop) up to ``max_redirects`` hops.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Mapping, Optional
from urllib.parse import urljoin, urlparse

import requests

from qm_ingest.config import DEFAULT_MAX_DOWNLOAD_MB, DEFAULT_MAX_REDIRECTS, DEFAULT_TIMEOUT
from qm_ingest.errors import NetworkError, NotFoundError

logger = logging.getLogger(__name__)

REMOTE_PREFIXES = ("http://", "https://")
WORKBOOK_SUFFIXES = {".xlsx", ".xlsm", ".xls", ".ods", ".csv"}
DEFAULT_SUFFIX = ".xlsx"
TEMP_PREFIX = "qm_"
CHUNK_SIZE = 1024 * 1024


def is_remote_source(source: "str | Path") -> bool:
    return isinstance(source, str) and source.lower().startswith(REMOTE_PREFIXES)


def download_suffix(url: str) -> str:
    suffix = Path(urlparse(url).path).suffix.lower()
    return suffix if suffix in WORKBOOK_SUFFIXES else DEFAULT_SUFFIX


def _declared_size(response) -> Optional[int]:
    content_length = response.headers.get("Content-Length")
    if not content_length:
        return None
    try:
        return int(content_length)
    except ValueError:
        return None


def _stream_to_tempfile(response, url: str, max_bytes: int) -> Path:
    declared = _declared_size(response)
    if declared and declared > max_bytes:
        raise NetworkError(
            f"Remote file is larger than {max_bytes // (1024 * 1024)} MB: {url}",
            status_code=response.status_code,
            url=url,
        )

    fd, tmp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=download_suffix(url))
    tmp_path = Path(tmp_name)
    downloaded = 0
    try:
        with os.fdopen(fd, "wb") as handle:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if not chunk:
                    continue
                downloaded += len(chunk)
                if downloaded > max_bytes:
                    raise NetworkError(
                        f"Remote file is larger than {max_bytes // (1024 * 1024)} MB: {url}",
                        status_code=response.status_code,
                        url=url,
                    )
                handle.write(chunk)
    except requests.RequestException as exc:
        tmp_path.unlink(missing_ok=True)
        raise NetworkError(f"Download interrupted: {exc}", url=url) from exc
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    logger.debug("Downloaded %d bytes from %s to %s", downloaded, url, tmp_path)
    return tmp_path


def download_file(
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    *,
    session=None,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    timeout: float = DEFAULT_TIMEOUT,
    max_bytes: int = DEFAULT_MAX_DOWNLOAD_MB * 1024 * 1024,
) -> Path:
    """GET ``url`` (following redirects) and store the body in a temp file."""
    http = session if session is not None else requests
    request_headers = dict(headers or {})
    current = url

    for hop in range(max_redirects + 1):
        try:
            response = http.get(
                current,
                headers=request_headers,
                allow_redirects=False,
                stream=True,
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise NetworkError(f"Request to {current} failed: {exc}", url=current) from exc

        try:
            status = response.status_code
            if 300 <= status < 400:
                location = response.headers.get("Location")
                if not location:
                    raise NetworkError(
                        f"HTTP {status} without a Location header from {current}",
                        status_code=status,
                        url=current,
                    )
                next_url = urljoin(current, location)
                logger.debug("Redirect %d: %s -> %s", hop + 1, current, next_url)
                current = next_url
                continue
            if status >= 400:
                raise NetworkError(f"HTTP {status} fetching {current}", status_code=status, url=current)
            return _stream_to_tempfile(response, current, max_bytes)
        finally:
            response.close()

    raise NetworkError(f"Too many redirects (more than {max_redirects}) fetching {url}", url=url)


def fetch_source(
    source: "str | Path",
    headers: Optional[Mapping[str, str]] = None,
    *,
    session=None,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    timeout: float = DEFAULT_TIMEOUT,
    max_bytes: int = DEFAULT_MAX_DOWNLOAD_MB * 1024 * 1024,
) -> Path:
    """
    Return a local path for ``source``.

    Raises:
        NetworkError   on status >= 400, transport failures, oversized bodies
                       or redirect loops.
        NotFoundError  when a local path (or the downloaded file) is missing.
    """
    if is_remote_source(source):
        path = download_file(
            str(source),
            headers,
            session=session,
            max_redirects=max_redirects,
            timeout=timeout,
            max_bytes=max_bytes,
        )
    else:
        path = Path(source)

    if not path.exists():
        raise NotFoundError(f"QM file not found: {path}")
    return path
