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

"""Core version parsing and comparison for svcupdater.

This module is I/O free: it only parses release tags and compares the
resulting numeric versions. Tags look like ``v17.2.0`` or ``v17.3.0-rc1``.
"""

from __future__ import annotations

from dataclasses import dataclass
import re

from svcupdater.exceptions import MalformedVersionError

_PREFIX_CHARS = ("v", "V")
_RC_SUFFIX = re.compile(r"-rc(\d*)$", re.IGNORECASE)
_NUMERIC = re.compile(r"^\d+(?:\.\d+)*$")


def _pad_equal(
    a: tuple[int, ...], b: tuple[int, ...]
) -> tuple[tuple[int, ...], tuple[int, ...]]:
    """Pad tuples with zeros so they align for element-wise comparison."""
    n = max(len(a), len(b))
    return a + (0,) * (n - len(a)), b + (0,) * (n - len(b))


@dataclass(frozen=True, eq=False)
class Version:
    """A dotted numeric version (major.minor.patch, ...).

    Components compare left-to-right as integers. Missing trailing
    components count as zero, so ``Version((1, 2)) == Version((1, 2, 0))``.

    Attributes:
        parts: Integer components in order.

    """

    parts: tuple[int, ...]

    def _cmp(self, other: Version) -> int:
        a, b = _pad_equal(self.parts, other.parts)
        return (a > b) - (a < b)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._cmp(other) == 0

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._cmp(other) < 0

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._cmp(other) <= 0

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._cmp(other) > 0

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._cmp(other) >= 0

    def __hash__(self) -> int:
        # Trailing zeros must not change the hash since they don't change equality.
        parts = list(self.parts)
        while parts and parts[-1] == 0:
            parts.pop()
        return hash(tuple(parts))

    def __str__(self) -> str:
        return ".".join(str(p) for p in self.parts)


def parse_version(tag: str) -> tuple[Version, bool]:
    """Parse a release tag into a comparable version and a prerelease flag.

    Steps:
      1) Strip one leading prefix character ("v" or "V") if present.
      2) Strip a "-rc<N>" suffix; its presence marks a prerelease.
      3) The remainder must be dotted digits ("17", "17.2", "17.2.0", ...).

    Args:
        tag: Release tag or version string (e.g., "v17.3.0-rc1", "17.2.0").

    Returns:
        A tuple (version, is_prerelease).

    Raises:
        MalformedVersionError: If the remainder is not a dotted numeric version.

    Example:
        ```python
        parse_version("v17.3.0-rc1")  # (Version((17, 3, 0)), True)
        parse_version("17.2.0")       # (Version((17, 2, 0)), False)
        ```

    """
    if not isinstance(tag, str):
        raise MalformedVersionError(repr(tag), "not a string")

    text = tag.strip()
    if text[:1] in _PREFIX_CHARS:
        text = text[1:]

    is_prerelease = False
    m = _RC_SUFFIX.search(text)
    if m:
        is_prerelease = True
        text = text[: m.start()]

    if not _NUMERIC.match(text):
        raise MalformedVersionError(tag, "expected dotted numeric version")

    return Version(tuple(int(p) for p in text.split("."))), is_prerelease


def compare_versions(a: str | Version, b: str | Version) -> int:
    """Compare two versions (tags or Version objects).

    Returns -1 if a < b, 0 if equal, 1 if a > b. Prerelease suffixes are
    stripped before comparing and do not affect the result.
    """
    va = a if isinstance(a, Version) else parse_version(a)[0]
    vb = b if isinstance(b, Version) else parse_version(b)[0]
    return va._cmp(vb)


def is_newer(remote: str | Version, current: str | Version | None) -> bool:
    """Return True iff remote is strictly newer than current.

    Any version is newer than no version at all.
    """
    if current is None:
        return True
    return compare_versions(remote, current) > 0
