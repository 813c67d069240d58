"""User-editable metadata sanitizing"""

import re
from pathlib import PurePosixPath
from typing import Iterable, List

from shared.models.base import DocumentCategory

MAX_TITLE_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 1000
MAX_TAGS = 10
MAX_TAG_LENGTH = 50

_TITLE_DISALLOWED = re.compile(r"[^A-Za-z0-9 _-]")
_DESCRIPTION_DISALLOWED = re.compile(r"[<>\"'\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_TAG_DISALLOWED = re.compile(r"[^A-Za-z0-9 _-]")


def sanitize_title(value: str) -> str:
    return _TITLE_DISALLOWED.sub("_", value or "").strip()[:MAX_TITLE_LENGTH]


def sanitize_description(value: str) -> str:
    return _DESCRIPTION_DISALLOWED.sub("", value or "").strip()[:MAX_DESCRIPTION_LENGTH]


def sanitize_tags(values: Iterable[str]) -> List[str]:
    tags = []
    for value in values or []:
        if not isinstance(value, str):
            continue
        tag = _TAG_DISALLOWED.sub("", value).strip()[:MAX_TAG_LENGTH]
        if tag:
            tags.append(tag)
    return tags[:MAX_TAGS]


def sanitize_category(value: str) -> DocumentCategory:
    try:
        return DocumentCategory(value)
    except ValueError:
        return DocumentCategory.OTHER


def title_from_filename(filename: str) -> str:
    """Default title: filename without its extension, sanitized"""
    return sanitize_title(PurePosixPath(filename or "").stem)
