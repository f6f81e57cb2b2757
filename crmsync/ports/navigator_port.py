"""Navigator port — abstract interface for in-app route changes.

The navigation coordinator depends on this protocol, never on a specific
router or view layer.
"""

from __future__ import annotations

from typing import Protocol


class Navigator(Protocol):
    """Abstract router used by the navigation coordinator."""

    @property
    def current_url(self) -> str: ...

    def navigate(self, url: str, replace: bool = False) -> None: ...
