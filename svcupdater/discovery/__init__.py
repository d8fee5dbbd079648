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

"""Release and artifact discovery for svcupdater.

Modules:

releases : module
    Fetch the vendor release feed and select the latest applicable release.
artifact : module
    Infer the binary download URL, read its published checksum, download
    and verify it.

Example:
    ```python
    from pathlib import Path
    from svcupdater.discovery import fetch_releases, resolve_and_fetch, select_latest

    latest = select_latest(fetch_releases(api_url), allow_prerelease=False)
    artifact = resolve_and_fetch(
        latest,
        Path("./downloads"),
        force=False,
        index_url_template="https://bucket.example.com/{tag}/index.html",
        binary_name="tool-windows-amd64.exe",
        binary_path="binaries/tool-windows-amd64.exe",
    )
    ```

"""

from .artifact import DownloadArtifact, find_expected_checksum, resolve_and_fetch
from .releases import Release, fetch_releases, select_latest

__all__ = [
    "DownloadArtifact",
    "Release",
    "fetch_releases",
    "find_expected_checksum",
    "resolve_and_fetch",
    "select_latest",
]
