from __future__ import annotations

from abc import ABC, abstractmethod

from capflow.core.types import Sample

# Contract between the polling engine and a metric feed.
# Plain ABC so test doubles stay lightweight.


class BaseDataSource(ABC):
    """Fetches one Sample per call for a given instrument."""

    @abstractmethod
    async def fetch_sample(self, instrument_id: str) -> Sample:
        """Fetch the latest sample for ``instrument_id``.

        Raises:
            TransportFailure: connection-level error or non-success status.
            MalformedPayload: a response arrived but did not describe a Sample.
        """
        raise NotImplementedError

    async def open(self) -> None:
        """Optional one-time initialization for long-lived resources."""
        return None

    async def close(self) -> None:
        """Release resources allocated in ``open()``. Must be idempotent."""
        return None
