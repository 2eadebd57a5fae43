"""
=============================================================================
HTTP HEADER MAPPING
=============================================================================

HTTP header names are case-insensitive (RFC 7230 section 3.2), but the
order in which a server sent them is still worth keeping for logging and
debugging. Headers gives both:

    headers = Headers()
    headers["Content-Length"] = "5"
    headers["content-length"]        # "5"
    list(headers)                    # ["Content-Length"]  (original case)

Setting an existing name (in any case) replaces the value in place and
keeps its original position.

=============================================================================
"""

from collections.abc import MutableMapping
from typing import Dict, Iterable, Iterator, Optional, Tuple, Union


class Headers(MutableMapping):
    """Ordered header mapping with case-insensitive keys."""

    def __init__(
        self,
        items: Optional[Union["Headers", Dict[str, str], Iterable[Tuple[str, str]]]] = None,
    ):
        # lowercase name -> (name as first seen, value)
        self._items: Dict[str, Tuple[str, str]] = {}
        if items is not None:
            if hasattr(items, "items"):
                items = items.items()
            for name, value in items:
                self[name] = value

    def __getitem__(self, name: str) -> str:
        return self._items[name.lower()][1]

    def __setitem__(self, name: str, value: str) -> None:
        key = name.lower()
        if key in self._items:
            name = self._items[key][0]
        self._items[key] = (name, value)

    def __delitem__(self, name: str) -> None:
        del self._items[name.lower()]

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._items

    def __repr__(self) -> str:
        return f"Headers({list(self.items())!r})"

    def add(self, name: str, value: str) -> None:
        """
        Add a header, joining repeated names with ", ".

        Per RFC 7230, "Vary: a" followed by "Vary: b" is equivalent to
        "Vary: a, b".
        """
        if name in self:
            self[name] = f"{self[name]}, {value}"
        else:
            self[name] = value

    def copy(self) -> "Headers":
        return Headers(self)
