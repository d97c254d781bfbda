"""Query-string pagination parsing and paging metadata."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass

_INTEGER = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class PageMetadata:
    current_page: int
    page_size: int
    total_item: int
    total_page: int
    has_next: bool
    has_previous: bool

    def to_dict(self) -> dict:
        return asdict(self)


def _parse_int(text: str) -> int:
    if not _INTEGER.fullmatch(text):
        raise ValueError(f"invalid integer: {text!r}")
    return int(text)


def parse_pagination(
    page_param: str,
    page_size_param: str,
    default_page: int,
    default_page_size: int,
) -> tuple[int, int]:
    """Return (page, page_size); blank parameters take the defaults.

    Raises ValueError when a non-blank parameter is not an integer.
    """
    page = default_page
    page_size = default_page_size
    if page_param.strip():
        page = _parse_int(page_param.strip())
    if page_size_param.strip():
        page_size = _parse_int(page_size_param.strip())
    return page, page_size


def build_page_metadata(page: int, page_size: int, total_item: int) -> PageMetadata:
    """Compute page count and navigation flags for a result set."""
    total_page = 0
    if page_size > 0 and total_item > 0:
        total_page = (total_item + page_size - 1) // page_size
    return PageMetadata(
        current_page=page,
        page_size=page_size,
        total_item=total_item,
        total_page=total_page,
        has_next=total_page > 0 and page < total_page,
        has_previous=total_page > 0 and page > 1,
    )