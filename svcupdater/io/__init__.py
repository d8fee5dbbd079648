"""Input/Output operations for svcupdater.

This package provides the HTTP transfer capability the updater consumes:
whole-file downloads with atomic writes and stream hashing, header-only
probes, small text fetches, and quarantine-marker removal.

Modules:

download : module
    HTTP(S) download, HEAD probe and helpers.

Public API:

download_file : function
    Download a URL to a folder, returning (path, sha256, headers).
probe_url : function
    HEAD a URL and return its status code.
fetch_text : function
    GET a URL and return its body.
sha256_file : function
    Hash a file on disk.
clear_quarantine : function
    Remove the downloaded-from-network marker from a file.
make_session : function
    Create a requests.Session with retry/backoff defaults.

"""

from .download import (
    clear_quarantine,
    download_file,
    fetch_text,
    make_session,
    probe_url,
    sha256_file,
)

__all__ = [
    "clear_quarantine",
    "download_file",
    "fetch_text",
    "make_session",
    "probe_url",
    "sha256_file",
]
