"""
guard.py - Engine-wide reentrancy guard

A single held/free flag. Entering while held raises Reentrancy without
touching the flag, so the outer holder still releases it on exit.
"""

from .core import Reentrancy


class ReentrancyGuard:
    """
    Scoped non-reentrant lock.

    Example:
        guard = ReentrancyGuard()
        with guard:
            ...            # any nested `with guard:` raises Reentrancy
    """

    def __init__(self):
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def __enter__(self) -> "ReentrancyGuard":
        if self._held:
            raise Reentrancy("Mutating call rejected: engine is already executing")
        self._held = True
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._held = False
        return False

    def __repr__(self) -> str:
        return f"ReentrancyGuard({'held' if self._held else 'free'})"
