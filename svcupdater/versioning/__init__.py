"""
Version parsing and comparison for svcupdater.

Release tags published by the vendor look like ``v17.2.0`` for stable
releases and ``v17.3.0-rc1`` for release candidates. This package turns
those tags into comparable numeric versions.

Public API
----------
Version : dataclass
    Dotted numeric version with zero-padded comparison.
parse_version : function
    Parse a tag into (Version, is_prerelease).
compare_versions : function
    Compare two versions, returning -1, 0, or 1.
is_newer : function
    Check if a remote version is newer than the current version.

Examples
--------
    >>> from svcupdater.versioning import parse_version
    >>> parse_version("v1.2.3")[0] < parse_version("v1.3.0")[0]
    True
    >>> parse_version("v17.3.0-rc1")[1]
    True

Notes
-----
- Pure functions: no network or file I/O
- Unparsable tags raise MalformedVersionError instead of defaulting
"""

from .keys import Version, compare_versions, is_newer, parse_version

__all__ = ["Version", "compare_versions", "is_newer", "parse_version"]
