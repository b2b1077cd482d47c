import os
import re
from typing import Dict, Optional

_BACKSLASH_RUN = re.compile(r'\\+')


def standardize_path(path: str) -> str:
    """Collapse runs of backslashes and turn them into forward slashes."""
    return _BACKSLASH_RUN.sub('/', path)


def clean_path(path: Optional[str], roots: Optional[Dict[str, str]] = None) -> str:
    """
    Shorten a file path for display.

    Windows paths are reduced to single separators and normalized to '/'.
    The longest matching prefix from `roots` is replaced by its label, so
    '/srv/app/models/user.py' with {'/srv/app': 'APPPATH'} becomes
    'APPPATH/models/user.py'.
    """
    if not path:
        return ''
    path = standardize_path(str(path))
    for prefix in sorted(roots or {}, key=len, reverse=True):
        norm = standardize_path(prefix).rstrip('/')
        if norm and (path == norm or path.startswith(norm + '/')):
            return roots[prefix] + path[len(norm):]
    return path


def is_within(path: str, directory: str) -> bool:
    path = os.path.abspath(path)
    directory = os.path.abspath(directory)
    return path == directory or path.startswith(directory + os.sep)
