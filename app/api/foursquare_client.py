"""Foursquare venue search client with async HTTP support."""
import logging
import time
from typing import Optional

import httpx
from pydantic import ValidationError

from app.exceptions import ProviderTimeout, ProviderUnavailable
from app.metrics import (
    FOURSQUARE_API_CALLS_TOTAL,
    FOURSQUARE_API_CALL_DURATION_SECONDS,
    FOURSQUARE_API_ERRORS_TOTAL,
)
from app.models import ExternalVenue

logger = logging.getLogger(__name__)


class FoursquareAPIClient:
    """Async HTTP client for the Foursquare v2 venue search API."""

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        api_version: str = "20231010",
        timeout: float = 10.0,
    ):
        """Initialize Foursquare API client.

        Args:
            base_url: Base URL for the API (e.g., "https://api.foursquare.com/v2")
            client_id: Userless client id
            client_secret: Userless client secret
            api_version: Version date sent as the "v" parameter
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_version = api_version
        self.timeout = timeout

        # Create async HTTP client with connection pooling
        self.client = httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )

    async def close(self):
        """Close the HTTP client and clean up resources."""
        await self.client.aclose()

    async def _request(self, method: str, endpoint: str, params: Optional[dict] = None) -> dict:
        """Make an HTTP request to the Foursquare API.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            params: Query parameters (credentials are added here)

        Returns:
            JSON response as dict

        Raises:
            ProviderTimeout: If the request timed out
            ProviderUnavailable: On HTTP errors, connection errors or bad bodies
        """
        url = f"{self.base_url}{endpoint}"
        query_params = {
            **(params or {}),
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "v": self.api_version,
        }

        logger.debug(f"[FoursquareAPIClient] {method} {url} params={params}")

        start_time = time.perf_counter()
        error_type = None

        try:
            response = await self.client.request(method=method, url=url, params=query_params)

            logger.debug(f"[FoursquareAPIClient] Response status: {response.status_code}")

            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            error_type = "http_error"
            logger.error(f"[FoursquareAPIClient] HTTP error on {method} {endpoint}: {e}")
            raise ProviderUnavailable(f"Foursquare returned {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            error_type = "timeout"
            logger.error(f"[FoursquareAPIClient] Timeout on {method} {endpoint}: {e}")
            raise ProviderTimeout(f"Foursquare timed out after {self.timeout}s") from e
        except httpx.RequestError as e:
            error_type = "connection_error"
            logger.error(f"[FoursquareAPIClient] Request error on {method} {endpoint}: {e}")
            raise ProviderUnavailable(f"Foursquare request failed: {e}") from e
        except ValueError as e:
            error_type = "invalid_response"
            logger.error(f"[FoursquareAPIClient] Undecodable body on {method} {endpoint}: {e}")
            raise ProviderUnavailable("Foursquare returned an undecodable body") from e
        finally:
            duration = time.perf_counter() - start_time
            FOURSQUARE_API_CALL_DURATION_SECONDS.labels(endpoint=endpoint).observe(duration)
            status = "success" if error_type is None else "error"
            FOURSQUARE_API_CALLS_TOTAL.labels(endpoint=endpoint, status=status).inc()
            if error_type is not None:
                FOURSQUARE_API_ERRORS_TOTAL.labels(endpoint=endpoint, error_type=error_type).inc()

    async def search(
        self,
        lat: float,
        lng: float,
        meters: int,
        filter: Optional[str] = None,
        limit: int = 50,
    ) -> list[ExternalVenue]:
        """Call GET /venues/search around a coordinate.

        Args:
            lat: Latitude
            lng: Longitude
            meters: Search radius in meters
            filter: Optional free-text query
            limit: Maximum number of venues to request

        Returns:
            List of ExternalVenue candidates (possibly empty)
        """
        params = {
            "ll": f"{lat},{lng}",
            "radius": int(meters),
            "limit": limit,
            "intent": "browse",
        }
        if filter:
            params["query"] = filter

        logger.info(f"[FoursquareAPIClient] Searching venues near ({lat}, {lng}) radius={meters}m")

        data = await self._request("GET", "/venues/search", params=params)

        response = data.get("response") if isinstance(data, dict) else None
        if not isinstance(response, dict):
            FOURSQUARE_API_ERRORS_TOTAL.labels(
                endpoint="/venues/search", error_type="invalid_response"
            ).inc()
            raise ProviderUnavailable("Foursquare response is missing the 'response' object")

        raw_venues = response.get("venues") or []
        if not isinstance(raw_venues, list):
            FOURSQUARE_API_ERRORS_TOTAL.labels(
                endpoint="/venues/search", error_type="invalid_response"
            ).inc()
            raise ProviderUnavailable("Foursquare 'venues' is not a list")

        venues = []
        for raw in raw_venues:
            try:
                venues.append(ExternalVenue.model_validate(raw))
            except ValidationError as e:
                venue_ref = raw.get("id") if isinstance(raw, dict) else raw
                logger.warning(f"[FoursquareAPIClient] Skipping unparseable venue {venue_ref!r}: {e}")
                continue

        logger.info(f"[FoursquareAPIClient] venue search success: venues_n={len(venues)}")
        return venues
