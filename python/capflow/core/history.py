from collections import deque
from typing import Deque, Optional, Tuple

from capflow.config.constants import DEFAULT_HISTORY_CAPACITY

from .errors import ConfigurationError
from .types import HistoryPoint


class HistoryBuffer:
    """Fixed-capacity sliding window of HistoryPoint in arrival order.

    Rules:
    - append is the only mutation; the oldest point is evicted once the
      buffer holds ``capacity`` points
    - order is local arrival order, not source timestamp order
    - reads return tuple copies, the underlying deque is never handed out
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY):
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise ConfigurationError(
                f"History capacity must be an integer >= 1, got {capacity!r}"
            )
        self._capacity = capacity
        self._points: Deque[HistoryPoint] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, point: HistoryPoint) -> None:
        self._points.append(point)

    def to_sequence(self) -> Tuple[HistoryPoint, ...]:
        return tuple(self._points)

    def latest(self) -> Optional[HistoryPoint]:
        return self._points[-1] if self._points else None

    def __len__(self) -> int:
        return len(self._points)

    def __repr__(self) -> str:
        return f"HistoryBuffer(capacity={self._capacity}, size={len(self._points)})"
