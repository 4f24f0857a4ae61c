"""
Download utilities used to stage remote sources on local disk.
"""

import os
import tempfile
import urllib.request
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlparse

CHUNK_SIZE = 8192  # 8KB chunks


def url_basename(url: str) -> str:
    """Return the last path segment of a URL, e.g. ``https://host/a/b.pdf?x=1`` -> ``b.pdf``."""
    return PurePosixPath(unquote(urlparse(url).path)).name


def download_file(url: str, destination: str) -> str:
    """
    Download a file from URL to destination.

    Args:
        url: URL to download from
        destination: Local file path to save to

    Returns:
        Path to downloaded file

    Raises:
        urllib.error.URLError: If download fails
        OSError: If file cannot be written
    """
    os.makedirs(os.path.dirname(destination) or ".", exist_ok=True)

    try:
        with urllib.request.urlopen(url) as response, open(destination, "wb") as f:
            while True:
                chunk = response.read(CHUNK_SIZE)
                if not chunk:
                    break
                f.write(chunk)
    except Exception:
        # Clean up partial download
        if os.path.exists(destination):
            os.remove(destination)
        raise

    return destination


def stage_download(url: str, temp_dir: Optional[str] = None) -> str:
    """Download a URL into a fresh temporary file and return its path.

    The caller owns the returned file and is responsible for removing it.
    """
    if temp_dir:
        os.makedirs(temp_dir, exist_ok=True)
    fd, path = tempfile.mkstemp(prefix="temp-", suffix=".tmp", dir=temp_dir or None)
    os.close(fd)
    return download_file(url, path)
