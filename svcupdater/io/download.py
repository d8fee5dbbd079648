"""
HTTP(S) transfer primitives for svcupdater.

This module is the "fetch URL to file" and "fetch URL headers only"
capability the rest of the updater builds on.

Key Features:

- **Retry Logic with Exponential Backoff** - Transient statuses (429, 500, 502, 503, 504) are retried by urllib3.util.Retry inside the session. Nothing above this module retries.
- **Atomic Writes** - Downloads land in a temporary .part file and are renamed on success, so a half-written binary never appears under its final name.
- **Stream Hashing** - SHA-256 is computed while streaming; no second read of the file.
- **Explicit Timeouts** - Every request carries a per-request timeout.
- **Quarantine Marker Removal** - Clears the Windows Zone.Identifier stream that marks a file as downloaded from the internet.

Constants:

- DEFAULT_CHUNK (int): Stream chunk size (1 MiB).
- DEFAULT_TIMEOUT (int): Per-request timeout in seconds.

Example:
    >>> from pathlib import Path
    >>> from svcupdater.io import download_file, probe_url
    >>> probe_url("https://example.com/binaries/tool.exe")
    200
    >>> path, sha256, headers = download_file(
    ...     "https://example.com/binaries/tool.exe",
    ...     Path("./downloads"),
    ...     filename="tool-v1.2.3.exe",
    ... )

Notes:
- Identity encoding is requested so servers hand back the raw bytes
- All requests errors are chained into NetworkError
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
import sys
import time
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from svcupdater import __version__
from svcupdater.exceptions import NetworkError
from svcupdater.logging import Logger, get_global_logger

# Stream size per chunk (1 MiB).
DEFAULT_CHUNK = 1024 * 1024
DEFAULT_TIMEOUT = 60

_ZONE_IDENTIFIER_STREAM = "Zone.Identifier"


def _filename_from_url(url: str) -> str:
    """
    Derive a filename from the URL path. Fallback to a generic name if empty.
    """
    name = Path(urlparse(url).path).name
    return name or "download.bin"


def sha256_file(path: Path) -> str:
    """Compute the SHA-256 hex digest of a file on disk."""
    h = hashlib.sha256()
    with Path(path).open("rb") as f:
        for chunk in iter(lambda: f.read(DEFAULT_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def make_session(
    retries: int = 3, extra_headers: dict[str, str] | None = None
) -> requests.Session:
    """
    Create a requests.Session with retry/backoff defaults.

    - Retries on common transient status codes (GET and HEAD only).
    - Applies exponential backoff.
    - Sets a User-Agent identifying svcupdater.
    - Requests identity encoding so binaries arrive byte-for-byte.
    """
    s = requests.Session()
    retry = Retry(
        total=retries,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET", "HEAD"),
        raise_on_status=False,
    )
    s.headers.update(
        {
            "User-Agent": f"svcupdater/{__version__}",
            "Accept-Encoding": "identity",
        }
    )
    if extra_headers:
        s.headers.update(extra_headers)
    s.mount("http://", HTTPAdapter(max_retries=retry))
    s.mount("https://", HTTPAdapter(max_retries=retry))
    return s


def fetch_text(
    url: str,
    *,
    timeout: int = DEFAULT_TIMEOUT,
    session: requests.Session | None = None,
) -> str:
    """GET a URL and return the decoded body.

    Raises:
        NetworkError: On connection failures or non-2xx responses.
    """
    logger = get_global_logger()
    logger.verbose("HTTP", f"GET {url}")

    own_session = session is None
    s = session or make_session()
    try:
        resp = s.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.HTTPError as err:
        raise NetworkError(f"GET {url} failed: {err}") from err
    except requests.RequestException as err:
        raise NetworkError(f"GET {url} failed: {err}") from err
    finally:
        if own_session:
            s.close()

    logger.verbose("HTTP", f"Response: {resp.status_code} ({len(resp.text)} bytes)")
    return resp.text


def probe_url(
    url: str,
    *,
    timeout: int = DEFAULT_TIMEOUT,
    session: requests.Session | None = None,
) -> int:
    """Issue a HEAD request and return the final status code.

    Redirects are followed. Connection failures are reported as status 0
    rather than raised, so callers decide whether a failed probe is fatal.
    """
    logger = get_global_logger()
    logger.verbose("HTTP", f"HEAD {url}")

    own_session = session is None
    s = session or make_session()
    try:
        resp = s.head(url, allow_redirects=True, timeout=timeout)
    except requests.RequestException as err:
        logger.verbose("HTTP", f"Probe failed: {err}")
        return 0
    finally:
        if own_session:
            s.close()

    logger.verbose("HTTP", f"Probe response: {resp.status_code} {resp.reason}")
    return resp.status_code


def clear_quarantine(path: Path, logger: Logger | None = None) -> bool:
    """Remove the "downloaded from the internet" marker from a file.

    On Windows this deletes the Zone.Identifier alternate data stream, which
    is what Unblock-File does. Other platforms carry no such marker here.

    Returns:
        True if a marker was removed, False otherwise.
    """
    if logger is None:
        logger = get_global_logger()

    if not sys.platform.startswith("win"):
        logger.debug("FILE", "No quarantine marker on this platform")
        return False

    stream = f"{path}:{_ZONE_IDENTIFIER_STREAM}"
    try:
        os.remove(stream)
    except FileNotFoundError:
        logger.debug("FILE", f"No {_ZONE_IDENTIFIER_STREAM} stream on {path}")
        return False
    logger.verbose("FILE", f"Removed {_ZONE_IDENTIFIER_STREAM} stream from {path.name}")
    return True


def download_file(
    url: str,
    destination_folder: Path,
    *,
    filename: str | None = None,
    timeout: int = DEFAULT_TIMEOUT,
    session: requests.Session | None = None,
    verbose: bool = False,
) -> tuple[Path, str, dict]:
    """Download a URL into destination_folder.

    Follows redirects. Writes to <filename>.part then renames to <filename>
    on success (atomic). Checksum verification is left to the caller, which
    knows whether a mismatch may be overridden.

    Args:
        url: Source URL.
        destination_folder: Folder to save into (created if missing).
        filename: Name for the saved file. Defaults to the last URL segment.
        timeout: Per-request timeout (seconds).
        session: Optional pre-configured session (one is created otherwise).
        verbose: Log response details.

    Returns:
        A tuple (file_path, sha256_hex, headers_dict).

    Raises:
        NetworkError: For connection failures or non-2xx responses, or when
            the file cannot be written.
    """
    logger = get_global_logger()

    destination_folder = Path(destination_folder)
    try:
        destination_folder.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise NetworkError(
            f"could not create download directory {destination_folder}: {err}"
        ) from err

    logger.verbose("HTTP", f"GET {url}")

    own_session = session is None
    s = session or make_session()
    try:
        try:
            resp = s.get(url, stream=True, allow_redirects=True, timeout=timeout)
            resp.raise_for_status()
        except requests.HTTPError as err:
            raise NetworkError(f"download failed for {url}: {err}") from err
        except requests.RequestException as err:
            raise NetworkError(f"download failed for {url}: {err}") from err

        logger.verbose("HTTP", f"Response: {resp.status_code} {resp.reason}")
        if verbose:
            for hist in resp.history:
                location = hist.headers.get("Location", "unknown")
                logger.verbose("HTTP", f"Redirect {hist.status_code} -> {location}")
            length = resp.headers.get("Content-Length", "unknown")
            logger.verbose("HTTP", f"Content-Length: {length}")

        target = destination_folder / (filename or _filename_from_url(resp.url))
        tmp = target.with_suffix(target.suffix + ".part")
        logger.verbose("FILE", f"Downloading to: {tmp}")

        sha = hashlib.sha256()
        started_at = time.time()
        try:
            with tmp.open("wb") as f:
                for chunk in resp.iter_content(chunk_size=DEFAULT_CHUNK):
                    if not chunk:
                        continue
                    f.write(chunk)
                    sha.update(chunk)
        except requests.RequestException as err:
            tmp.unlink(missing_ok=True)
            raise NetworkError(f"download interrupted for {url}: {err}") from err
        except OSError as err:
            tmp.unlink(missing_ok=True)
            raise NetworkError(f"could not write {tmp}: {err}") from err
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        finally:
            resp.close()
    finally:
        if own_session:
            s.close()

    digest = sha.hexdigest()
    logger.verbose("FILE", f"SHA-256: {digest} (computed during download)")

    logger.verbose("FILE", f"Atomic rename: {tmp.name} -> {target.name}")
    try:
        tmp.replace(target)
    except OSError as err:
        tmp.unlink(missing_ok=True)
        raise NetworkError(f"could not move {tmp.name} to {target}: {err}") from err

    elapsed = time.time() - started_at
    logger.verbose("FILE", f"Download complete: {target} in {elapsed:.1f}s")

    return target, digest, dict(resp.headers)
