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

"""Release feed discovery for svcupdater.

The vendor publishes releases through a paginated JSON API (GitLab's
``/projects/:id/releases`` by default). Each entry carries at least
``name``, ``tag_name`` and ``created_at``. This module fetches that feed and
selects the release to install.

Selection Rules:

- Releases are sorted by creation time (newest first) to fix a stable
  tie-break order, then sorted by version (highest first). The first entry
  wins.
- With prerelease disabled, any release whose NAME matches the
  release-candidate marker (``-rc<N>`` by default) is excluded, even when
  it carries the highest version.
- With prerelease enabled, every release is eligible.
- A tag that does not parse excludes that release; it never defaults.

Configuration:
    ```yaml
    releases:
      api_url: "https://gitlab.com/api/v4/projects/gitlab-org%2Fgitlab-runner/releases"
      per_page: 100
      max_pages: 1
      rc_pattern: "-rc\\d*"
      token: "${GITLAB_TOKEN}"           # Optional
      token_header: "PRIVATE-TOKEN"      # Optional
    ```

Example:
    ```python
    from svcupdater.discovery.releases import fetch_releases, select_latest

    releases = fetch_releases(api_url)
    latest = select_latest(releases, allow_prerelease=False)
    print(latest.tag, latest.version)
    ```

"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
import re
from typing import Any

import requests

from svcupdater.exceptions import (
    MalformedVersionError,
    NetworkError,
    NoReleaseFoundError,
)
from svcupdater.io.download import DEFAULT_TIMEOUT, make_session
from svcupdater.logging import Logger, get_global_logger
from svcupdater.versioning import Version, parse_version

DEFAULT_RC_PATTERN = r"-rc\d*"


@dataclass(frozen=True)
class Release:
    """One published release, immutable once fetched.

    Attributes:
        name: Release display name (e.g., "v17.2.0").
        tag: Git tag (e.g., "v17.2.0").
        created_at: Creation timestamp (timezone-aware).
        version: Numeric version parsed from the tag.
        is_prerelease: True iff the tag carries a "-rc<N>" suffix.

    """

    name: str
    tag: str
    created_at: datetime
    version: Version
    is_prerelease: bool

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Release:
        """Build a Release from one feed entry.

        Raises:
            MalformedVersionError: If tag_name is missing or does not parse.
            ValueError: If created_at is missing or not ISO-8601.
        """
        tag = data.get("tag_name") or ""
        version, is_prerelease = parse_version(tag)
        created_at = _parse_timestamp(data.get("created_at"))
        return cls(
            name=data.get("name") or tag,
            tag=tag,
            created_at=created_at,
            version=version,
            is_prerelease=is_prerelease,
        )


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str) or not value:
        raise ValueError(f"missing or invalid created_at: {value!r}")
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


def is_rc_name(name: str, rc_pattern: str = DEFAULT_RC_PATTERN) -> bool:
    """Return True if a release name carries the release-candidate marker."""
    return re.search(rc_pattern, name, re.IGNORECASE) is not None


def parse_releases(
    payload: list[dict[str, Any]], logger: Logger | None = None
) -> list[Release]:
    """Turn raw feed entries into Release objects.

    Entries with unparsable tags or timestamps are skipped (logged at
    verbose level); they never take part in selection.
    """
    if logger is None:
        logger = get_global_logger()

    releases: list[Release] = []
    for entry in payload:
        if not isinstance(entry, dict):
            logger.verbose("RELEASES", f"Skipping non-object entry: {entry!r}")
            continue
        try:
            releases.append(Release.from_api(entry))
        except MalformedVersionError as err:
            logger.verbose("RELEASES", f"Skipping release: {err}")
        except ValueError as err:
            logger.verbose(
                "RELEASES", f"Skipping release {entry.get('tag_name')!r}: {err}"
            )
    return releases


def fetch_releases(
    api_url: str,
    *,
    per_page: int = 100,
    max_pages: int = 1,
    token: str | None = None,
    token_header: str = "PRIVATE-TOKEN",
    timeout: int = DEFAULT_TIMEOUT,
    retries: int = 3,
    logger: Logger | None = None,
) -> list[Release]:
    """Fetch the release feed and parse it.

    Follows ``Link: rel="next"`` headers for up to max_pages pages.

    Args:
        api_url: Release list endpoint.
        per_page: Page size requested from the API.
        max_pages: Maximum number of pages to follow.
        token: Optional API token.
        token_header: Header name carrying the token ("PRIVATE-TOKEN" for
            GitLab, "Authorization" for bearer tokens).
        timeout: Per-request timeout (seconds).
        retries: Transport-level retries for transient statuses.
        logger: Optional logger (global logger otherwise).

    Returns:
        Parsed releases in feed order.

    Raises:
        NetworkError: If the feed is unreachable, returns non-2xx, or is not
            a JSON list.

    """
    if logger is None:
        logger = get_global_logger()

    headers: dict[str, str] = {"Accept": "application/json"}
    if token:
        if token_header.lower() == "authorization":
            headers["Authorization"] = f"Bearer {token}"
        else:
            headers[token_header] = token
        logger.verbose("RELEASES", "Using authenticated API request")

    payload: list[dict[str, Any]] = []
    url: str | None = api_url
    params: dict[str, Any] | None = {"per_page": per_page}
    pages = 0

    with make_session(retries=retries, extra_headers=headers) as session:
        while url and pages < max_pages:
            logger.verbose("RELEASES", f"Fetching releases from: {url}")
            try:
                response = session.get(url, params=params, timeout=timeout)
                response.raise_for_status()
            except requests.exceptions.HTTPError as err:
                raise NetworkError(
                    f"Release feed request failed: {response.status_code} "
                    f"{response.reason} ({url})"
                ) from err
            except requests.exceptions.RequestException as err:
                raise NetworkError(f"Failed to fetch release feed: {err}") from err

            try:
                page = response.json()
            except ValueError as err:
                raise NetworkError(f"Release feed is not valid JSON: {url}") from err
            if not isinstance(page, list):
                raise NetworkError(
                    f"Release feed must be a JSON list, got {type(page).__name__}"
                )

            payload.extend(page)
            pages += 1

            # The next link already carries its query string.
            url = response.links.get("next", {}).get("url")
            params = None

    logger.verbose("RELEASES", f"Fetched {len(payload)} release(s) in {pages} page(s)")
    return parse_releases(payload, logger=logger)


def select_latest(
    releases: list[Release],
    allow_prerelease: bool,
    *,
    rc_pattern: str = DEFAULT_RC_PATTERN,
) -> Release:
    """Select the release to install under the prerelease policy.

    Args:
        releases: Candidate releases (any order).
        allow_prerelease: If False, releases whose name matches rc_pattern
            are excluded.
        rc_pattern: Regex identifying release-candidate names.

    Returns:
        The release with the greatest version. Among equal versions the most
        recently created wins.

    Raises:
        NoReleaseFoundError: If no release passes the filter.

    Example:
        ```python
        latest = select_latest(releases, allow_prerelease=False)
        # v17.3.0-rc1 is skipped; v17.2.0 is returned
        ```

    """
    if allow_prerelease:
        candidates = list(releases)
    else:
        candidates = [r for r in releases if not is_rc_name(r.name, rc_pattern)]

    if not candidates:
        raise NoReleaseFoundError(
            f"No release found among {len(releases)} candidate(s) "
            f"(allow_prerelease={allow_prerelease})"
        )

    # Two-stage sort: creation time fixes the tie-break order, version decides.
    by_created = sorted(candidates, key=lambda r: r.created_at, reverse=True)
    by_version = sorted(by_created, key=lambda r: r.version, reverse=True)
    return by_version[0]
