# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Download resolution and verification for svcupdater.

The vendor's object-storage bucket publishes, per release tag, an index
page listing every binary next to its SHA-256 checksum, and the binaries
themselves under a fixed path relative to that page:

    https://gitlab-runner-downloads.s3.amazonaws.com/v17.2.0/index.html
    https://gitlab-runner-downloads.s3.amazonaws.com/v17.2.0/binaries/gitlab-runner-windows-amd64.exe

Resolution Steps:

1. Expand the index URL template with the release tag and fetch the page.
2. Find the row (or line) naming the platform binary and capture the
   adjacent 64-hex-character token as the expected checksum. No match is
   a warning, not an error.
3. Infer the binary URL by substituting the index page name with the
   binary path, then HEAD-probe it. A failed probe is a hard stop
   (DownloadLinkUnresolvedError); there is no fallback.
4. Download under a name that includes the tag, clear the quarantine
   marker, and verify the checksum.

Checksum Policy:

- Expected present and equal: verified.
- Expected present and different: artifact deleted and
  ChecksumMismatchError raised, unless force (warning, artifact kept).
- Expected absent: proceed without comparison.

Configuration:
    ```yaml
    download:
      index_url: "https://gitlab-runner-downloads.s3.amazonaws.com/{tag}/index.html"
      index_page_name: "index.html"
      binary_path: "binaries/gitlab-runner-windows-amd64.exe"
      directory: "./downloads"
    product:
      binary_name: "gitlab-runner-windows-amd64.exe"
    ```

"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import re
from typing import Literal

from bs4 import BeautifulSoup

from svcupdater.exceptions import (
    ChecksumMismatchError,
    ConfigError,
    DownloadLinkUnresolvedError,
)
from svcupdater.io.download import (
    DEFAULT_TIMEOUT,
    clear_quarantine,
    download_file,
    fetch_text,
    make_session,
    probe_url,
)
from svcupdater.logging import Logger, get_global_logger

from .releases import Release

ChecksumStatus = Literal["verified", "missing", "mismatch_forced"]

_SHA256_TOKEN = re.compile(r"(?<![0-9A-Fa-f])[0-9A-Fa-f]{64}(?![0-9A-Fa-f])")


@dataclass(frozen=True)
class DownloadArtifact:
    """A downloaded binary pending installation.

    Attributes:
        local_path: Where the binary was saved.
        expected_sha256: Checksum published on the index page (None if the
            page listed none).
        actual_sha256: Checksum computed from the downloaded bytes.
        source_url: URL the binary was downloaded from.
        tag: Release tag the artifact belongs to.
        checksum_status: "verified", "missing" or "mismatch_forced".

    """

    local_path: Path
    expected_sha256: str | None
    actual_sha256: str
    source_url: str
    tag: str
    checksum_status: ChecksumStatus


def build_index_url(template: str, tag: str) -> str:
    """Expand the index URL template with a release tag.

    Raises:
        ConfigError: If the template has no "{tag}" placeholder or other
            unknown placeholders.
    """
    if "{tag}" not in template:
        raise ConfigError(
            f"index URL template has no {{tag}} placeholder: {template!r}"
        )
    try:
        return template.format(tag=tag)
    except (KeyError, IndexError, ValueError) as err:
        raise ConfigError(f"invalid index URL template {template!r}: {err}") from err


def infer_binary_url(index_url: str, index_page_name: str, binary_path: str) -> str:
    """Derive the direct binary URL from the index page URL.

    The last occurrence of index_page_name is replaced with binary_path:
    ".../v17.2.0/index.html" -> ".../v17.2.0/binaries/tool.exe".

    Raises:
        ConfigError: If index_page_name does not occur in index_url.
    """
    head, sep, tail = index_url.rpartition(index_page_name)
    if not sep:
        raise ConfigError(
            f"index page name {index_page_name!r} not found in {index_url!r}"
        )
    return f"{head}{binary_path}{tail}"


def _name_regex(binary_name: str) -> re.Pattern[str]:
    # Exact filename: "tool.exe" must not match "tool.exe.zip" or "my-tool.exe".
    return re.compile(r"(?<![\w.-])" + re.escape(binary_name) + r"(?![\w.-])")


def find_expected_checksum(page: str, binary_name: str) -> str | None:
    """Find the SHA-256 published next to binary_name on an index page.

    HTML table rows are checked first (the filename and its checksum sit in
    neighbouring cells); plain lines of the raw body are the fallback for
    text listings such as a release.sha256 file.

    Args:
        page: Index page body (HTML or text).
        binary_name: Platform binary filename to look for.

    Returns:
        Lowercase hex checksum, or None if no line names the binary next to
        a 64-hex token.

    Example:
        ```python
        find_expected_checksum(
            "<tr><td>binaries/tool.exe</td><td>" + "ab" * 32 + "</td></tr>",
            "tool.exe",
        )
        # returns 'abab...ab'
        ```

    """
    name_re = _name_regex(binary_name)

    soup = BeautifulSoup(page, "html.parser")
    for row in soup.find_all("tr"):
        row_text = row.get_text(" ", strip=True)
        hrefs = " ".join(a.get("href", "") for a in row.find_all("a"))
        if not (name_re.search(row_text) or name_re.search(hrefs)):
            continue
        m = _SHA256_TOKEN.search(row_text)
        if m:
            return m.group(0).lower()

    for line in page.splitlines():
        if not name_re.search(line):
            continue
        m = _SHA256_TOKEN.search(line)
        if m:
            return m.group(0).lower()

    return None


def artifact_filename(binary_name: str, tag: str) -> str:
    """Deterministic download name including the tag.

    "tool-windows-amd64.exe" + "v17.2.0" -> "tool-windows-amd64-v17.2.0.exe"
    """
    p = Path(binary_name)
    return f"{p.stem}-{tag}{p.suffix}"


def resolve_and_fetch(
    release: Release,
    destination_dir: Path,
    force: bool,
    *,
    index_url_template: str,
    binary_name: str,
    binary_path: str,
    index_page_name: str = "index.html",
    timeout: int = DEFAULT_TIMEOUT,
    retries: int = 3,
    logger: Logger | None = None,
) -> DownloadArtifact:
    """Resolve, download and verify the binary for a release.

    Args:
        release: Release selected for installation.
        destination_dir: Folder to download into (created if missing).
        force: Keep an artifact whose checksum does not match.
        index_url_template: Index page URL with a "{tag}" placeholder.
        binary_name: Platform binary filename listed on the index page.
        binary_path: Path substituted for the index page name to reach the
            binary.
        index_page_name: Trailing page name in the index URL.
        timeout: Per-request timeout (seconds).
        retries: Transport-level retries for transient statuses.
        logger: Optional logger (global logger otherwise).

    Returns:
        The downloaded artifact.

    Raises:
        ConfigError: If the URL templates cannot be expanded.
        NetworkError: If the index page or download fails.
        DownloadLinkUnresolvedError: If the inferred binary URL fails its probe.
        ChecksumMismatchError: If the checksum differs and force is False.

    """
    if logger is None:
        logger = get_global_logger()

    index_url = build_index_url(index_url_template, release.tag)
    binary_url = infer_binary_url(index_url, index_page_name, binary_path)

    with make_session(retries=retries) as session:
        logger.verbose("DOWNLOAD", f"Index page: {index_url}")
        page = fetch_text(index_url, timeout=timeout, session=session)

        expected = find_expected_checksum(page, binary_name)
        if expected:
            logger.verbose("DOWNLOAD", f"Expected SHA-256: {expected}")
        else:
            logger.warning(
                f"No checksum for {binary_name} on {index_url}; "
                f"the download will not be verified"
            )

        logger.verbose("DOWNLOAD", f"Inferred binary URL: {binary_url}")
        status = probe_url(binary_url, timeout=timeout, session=session)
        if not 200 <= status < 300:
            raise DownloadLinkUnresolvedError(binary_url, status)

        file_path, actual, _ = download_file(
            binary_url,
            Path(destination_dir),
            filename=artifact_filename(binary_name, release.tag),
            timeout=timeout,
            session=session,
        )

    clear_quarantine(file_path, logger=logger)

    checksum_status: ChecksumStatus = "missing"
    if expected:
        if actual.lower() == expected.lower():
            checksum_status = "verified"
            logger.verbose("DOWNLOAD", "Checksum verified")
        elif force:
            checksum_status = "mismatch_forced"
            logger.warning(
                f"Checksum mismatch for {file_path.name} (expected {expected}, "
                f"got {actual}); continuing because force is set"
            )
        else:
            logger.verbose("DOWNLOAD", f"Removing unverified artifact {file_path}")
            file_path.unlink(missing_ok=True)
            raise ChecksumMismatchError(file_path.name, expected, actual)

    return DownloadArtifact(
        local_path=file_path,
        expected_sha256=expected,
        actual_sha256=actual,
        source_url=binary_url,
        tag=release.tag,
        checksum_status=checksum_status,
    )
