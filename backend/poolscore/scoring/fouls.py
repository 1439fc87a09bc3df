"""Consecutive-foul tracking for the three-foul penalty."""

from __future__ import annotations

from typing import Dict, List, Optional

FOUL_WINDOW = 3
THREE_FOUL_PENALTY = 15


class FoulStreakTracker:
    """Rolling window of the last foul-class turns for each player.

    Only foul-class actions append to a window. A made ball clears the
    shooter's window; safeties and misses leave it untouched.
    """

    def __init__(self, windows: Optional[Dict[int, List[bool]]] = None) -> None:
        self._windows: Dict[int, List[bool]] = {1: [], 2: []}
        for player, window in (windows or {}).items():
            self._windows[int(player)] = [bool(v) for v in window][-FOUL_WINDOW:]

    def register_foul(self, player: int) -> bool:
        """Record a foul; return True when it completes three in a row."""
        window = (self._windows[player] + [True])[-FOUL_WINDOW:]
        if len(window) == FOUL_WINDOW and all(window):
            self._windows[player] = []
            return True
        self._windows[player] = window
        return False

    def clear(self, player: int) -> None:
        self._windows[player] = []

    def consecutive(self, player: int) -> int:
        count = 0
        for foul in reversed(self._windows[player]):
            if not foul:
                break
            count += 1
        return count

    def warning(self, player: int) -> bool:
        """True when one more foul incurs the penalty."""
        return self.consecutive(player) == FOUL_WINDOW - 1

    def window(self, player: int) -> List[bool]:
        return list(self._windows[player])

    def to_dict(self) -> Dict[int, List[bool]]:
        return {player: list(window) for player, window in self._windows.items()}
