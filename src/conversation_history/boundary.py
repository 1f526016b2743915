"""Classify messages as belonging to a prior session or the current one."""
from __future__ import annotations

import time
from typing import Callable, List, Optional, Sequence, Tuple

from .models import Message


def now_millis() -> int:
    return int(time.time() * 1000)


def is_historical(message: Message, session_start: int) -> bool:
    return message.timestamp < session_start


class SessionBoundaryTracker:
    """Holds the start instant of the session currently on screen.

    The instant is taken once, when the view is mounted, and never moves.
    """

    def __init__(self, session_start: Optional[int] = None, clock: Callable[[], int] = now_millis) -> None:
        self._session_start = int(session_start) if session_start is not None else clock()

    @property
    def session_start(self) -> int:
        return self._session_start

    def is_historical(self, message: Message) -> bool:
        return is_historical(message, self._session_start)

    def annotate(self, messages: Sequence[Message]) -> List[Tuple[Message, bool]]:
        return [(m, self.is_historical(m)) for m in messages]

    def first_live_index(self, messages: Sequence[Message]) -> Optional[int]:
        """Index of the first current-session message that follows a historical one.

        This is where the "previous conversation" divider goes. ``None`` when
        the list does not cross the boundary.
        """
        for i in range(1, len(messages)):
            if self.is_historical(messages[i - 1]) and not self.is_historical(messages[i]):
                return i
        return None
