"""Dependency injection container for application components."""
import logging

import redis.asyncio

from app.api.foursquare_client import FoursquareAPIClient
from app.config import Settings
from app.dao.redis_search_log_dao import RedisSearchLogDAO
from app.dao.redis_venue_dao import RedisVenueDAO
from app.db.geo_redis_client import GeoRedisClient
from app.handlers.venue_handler import VenueHandler
from app.services import VenueProximityCache

logger = logging.getLogger(__name__)


class Container:
    """Dependency injection container.

    Initializes and wires up all application dependencies.
    """

    def __init__(self, settings: Settings):
        """Initialize container with all dependencies.

        Args:
            settings: Application settings
        """
        logger.info("[Container] Initializing container")
        self.settings = settings

        logger.info(f"[Container] Using Redis at {settings.redis_address}")
        redis_internal_client = redis.asyncio.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password or None,
            db=settings.redis_db,
            decode_responses=True,
        )

        # Initialize Redis client wrapper and DAOs
        self.redis_client = GeoRedisClient(redis_internal_client)
        self.venue_dao = RedisVenueDAO(self.redis_client)
        self.search_log_dao = RedisSearchLogDAO(self.redis_client)

        # Initialize venue directory client
        if not settings.foursquare_client_id or not settings.foursquare_client_secret:
            logger.warning(
                "[Container] Foursquare credentials not configured. "
                "Cache misses will fail with ProviderUnavailable."
            )
        self.venue_provider = FoursquareAPIClient(
            base_url=settings.foursquare_endpoint_base_v2,
            client_id=settings.foursquare_client_id,
            client_secret=settings.foursquare_client_secret,
            api_version=settings.foursquare_api_version,
            timeout=settings.provider_timeout_seconds,
        )

        # Initialize services
        self.venue_cache = VenueProximityCache(
            self.venue_dao,
            self.search_log_dao,
            self.venue_provider,
            max_age=settings.search_log_max_age,
            provider_timeout=settings.provider_timeout_seconds,
            nearby_limit=settings.nearby_result_limit,
            rooms_limit=settings.rooms_result_limit,
            provider_limit=settings.provider_result_limit,
        )

        # Initialize handlers
        self.venue_handler = VenueHandler(self.venue_cache)

        logger.info("[Container] Container initialized successfully")

    async def start(self):
        """Verify connectivity of external resources."""
        try:
            await self.redis_client.ping()
            logger.info("[Container] Redis connection successful")
        except Exception as e:
            logger.error(f"[Container] Failed to connect to Redis: {e}")
            raise

    async def shutdown(self):
        """Clean up resources on shutdown."""
        logger.info("[Container] Shutting down container")
        try:
            await self.venue_provider.close()
            logger.info("[Container] Foursquare API client closed")
        except Exception as e:
            logger.error(f"[Container] Error closing Foursquare API client: {e}")

        try:
            await self.redis_client.close()
            logger.info("[Container] Redis client closed")
        except Exception as e:
            logger.error(f"[Container] Error closing Redis client: {e}")
