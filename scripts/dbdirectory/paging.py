"""Row windowing for bulk listings.

Each dialect gets the clause it natively understands; the rewrite only ever
appends to the statement so column names, types and any existing ORDER BY
stay intact.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from scripts.dbdirectory.dialects import Dialect, PagingStrategy

_ORDER_BY = re.compile(r"\border\s+by\b", re.IGNORECASE)


@dataclass(frozen=True)
class Pageable:
    offset: int
    limit: int

    def __post_init__(self) -> None:
        if isinstance(self.offset, bool) or not isinstance(self.offset, int) or self.offset < 0:
            raise ValueError(f"offset must be a non-negative integer, got {self.offset!r}")
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit <= 0:
            raise ValueError(f"limit must be a positive integer, got {self.limit!r}")

    @classmethod
    def of(cls, first_result: Optional[int], max_results: Optional[int]) -> Optional["Pageable"]:
        """Build from host-style (first, max) arguments; a missing max means no paging."""
        if max_results is None or max_results <= 0:
            return None
        return cls(offset=max(first_result or 0, 0), limit=max_results)


def format_with_pageable(query: str, pageable: Optional[Pageable], dialect: Dialect) -> str:
    """Return ``query`` restricted to rows ``[offset, offset + limit)``.

    Added clauses start on a new line so a trailing ``--`` comment in the
    template cannot swallow them.
    """
    if pageable is None:
        return query

    base = query.rstrip().rstrip(";").rstrip()
    offset, limit = int(pageable.offset), int(pageable.limit)

    if dialect.paging is PagingStrategy.LIMIT_OFFSET:
        return f"{base}\nLIMIT {limit} OFFSET {offset}"

    if dialect.paging is PagingStrategy.ORDERED_OFFSET_FETCH and not has_top_level_order_by(base):
        base = f"{base}\nORDER BY (SELECT NULL)"

    return f"{base}\nOFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY"


def has_top_level_order_by(query: str) -> bool:
    """True when ORDER BY appears outside parentheses, string literals and comments."""
    return any(_ORDER_BY.match(chunk) for chunk in _top_level_chunks(query))


def _top_level_chunks(query: str) -> list[str]:
    # Suffixes of the query that start at depth 0 outside quotes and comments.
    chunks: list[str] = []
    depth = 0
    quote: Optional[str] = None
    i, n = 0, len(query)
    while i < n:
        ch = query[i]
        if quote:
            if ch == quote:
                quote = None
            i += 1
            continue
        if query.startswith("--", i):
            end = query.find("\n", i)
            i = n if end < 0 else end + 1
            continue
        if query.startswith("/*", i):
            end = query.find("*/", i + 2)
            i = n if end < 0 else end + 2
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(depth - 1, 0)
        elif depth == 0 and ch in "oO" and (i == 0 or not (query[i - 1].isalnum() or query[i - 1] == "_")):
            chunks.append(query[i:])
        i += 1
    return chunks
