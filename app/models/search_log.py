"""Search log models."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SearchLogEntry(BaseModel):
    """Freshness witness for one proximity query shape.

    Keyed by the rounded coordinate and the normalized filter; it never
    carries the venues that the search returned.
    """
    lng: float
    lat: float
    filter: Optional[str] = None
    results: int = 0
    created: datetime
    updated: datetime

    def is_fresh(self, now: datetime, max_age) -> bool:
        """Check whether the entry was updated less than ``max_age`` ago."""
        return now - self.updated < max_age
