import json
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..config import settings
from ..models.schemas import DesignSpecification

logger = logging.getLogger(settings.SERVICE_NAME + ".redis_client")


class DesignEventPublisher:
    """
    Publishes design events to a Redis channel so listeners in other processes see
    every new or modified design.

    Publishing is best-effort: a Redis outage is logged and never fails the request
    that produced the design.
    """

    def __init__(self, config: Optional[type(settings)] = None):
        self.config = config if config else settings
        self.redis_url: str = str(self.config.REDIS_URL)
        self.channel: str = self.config.REDIS_DESIGN_EVENTS_CHANNEL
        self._redis_connection: Optional[aioredis.Redis] = None
        self._is_connected: bool = False

        logger.info(f"DesignEventPublisher initialized. Channel: '{self.channel}'")

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    async def connect(self) -> bool:
        """
        Establishes a connection to the Redis server.
        Returns True if connection is successful, False otherwise.
        """
        if self._is_connected and self._redis_connection:
            return True
        try:
            logger.info(f"Connecting to Redis at {self.redis_url}...")
            self._redis_connection = aioredis.from_url(self.redis_url, decode_responses=False)
            await self._redis_connection.ping()
            self._is_connected = True
            logger.info("Successfully connected to Redis.")
            return True
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error(f"Failed to connect to Redis: {e}", exc_info=False)
        except Exception as e:
            logger.error(f"An unexpected error occurred during Redis connection: {e}", exc_info=True)

        self._is_connected = False
        self._redis_connection = None
        return False

    async def close(self) -> None:
        if self._redis_connection:
            try:
                await self._redis_connection.aclose()
                logger.info("Redis connection closed.")
            except Exception as e:
                logger.error(f"Error closing Redis connection: {e}", exc_info=True)
            finally:
                self._redis_connection = None
        self._is_connected = False

    async def publish_design_event(self, event_type: str, design: DesignSpecification) -> bool:
        """Publish `{"type": event_type, "design": {...}}` on the design events channel."""
        if not self._is_connected or not self._redis_connection:
            logger.debug(f"Skipping Redis publish of {event_type} for {design.id}: not connected.")
            return False
        try:
            message = json.dumps({"type": event_type, "design": design.to_payload()})
            await self._redis_connection.publish(self.channel, message)
            logger.debug(f"Published {event_type} for design {design.id} to '{self.channel}'.")
            return True
        except Exception as e:
            logger.error(f"Error publishing {event_type} to Redis channel '{self.channel}': {e}", exc_info=True)
            return False
