"""Capability interface for external venue directories."""
from typing import Optional, Protocol

from app.models import ExternalVenue


class ExternalVenueProvider(Protocol):
    """A remote venue search API.

    Implementations raise ``ProviderUnavailable`` or ``ProviderTimeout`` on
    failure; an empty list is a successful answer.
    """

    async def search(
        self,
        lat: float,
        lng: float,
        meters: int,
        filter: Optional[str] = None,
        limit: int = 50,
    ) -> list[ExternalVenue]:
        ...

    async def close(self) -> None:
        ...
