"""
Utility functions for the SmartBlob core package.
"""

from .checks import first_not_none, ifnone, is_url
from .downloads import download_file, stage_download, url_basename

__all__ = [
    "download_file",
    "first_not_none",
    "ifnone",
    "is_url",
    "stage_download",
    "url_basename",
]
