"""
SampleStore Port - Interface for the remote storage backend.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict

from pgprom.core.domain.samples import ReadRequest, ReadResponse, Sample


class SampleStore(BaseModel, ABC):
    """
    Abstract interface for remote write / remote read storage.
    Also serves as a Pydantic Model for configuration validation.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable backend name."""
        ...

    @abstractmethod
    async def write(self, samples: Sequence[Sample]) -> int:
        """
        Write a batch of samples atomically.

        Args:
            samples: Samples in write order

        Returns:
            Number of samples written

        Raises:
            WriteError: if any part of the batch fails; nothing is kept
        """
        ...

    @abstractmethod
    async def read(self, request: ReadRequest) -> ReadResponse:
        """
        Execute every query of `request` and merge the matched series.

        Returns:
            A response with a single result holding all matched series
        """
        ...

    @abstractmethod
    async def health_check(self) -> None:
        """Raise StoreConnectionError if the backend is unreachable."""
        ...

    async def close(self) -> None:
        return None
