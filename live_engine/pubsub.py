import os
import logging
import redis
from typing import Callable, Dict
from .events import Event, EventType, results_published_event
from .models import PublishedResults

logger = logging.getLogger(__name__)

RESULTS_CHANNEL = "live:results"


class PubSubClient:
    """Redis pub/sub transport carrying published results between processes."""

    def __init__(self, redis_url: str = None, redis_client: redis.Redis = None):
        self.redis_url = redis_url or os.getenv('REDIS_URL', 'redis://localhost:6379')
        self.redis = redis_client or redis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5
        )
        self._pubsub = None
        self._listener_thread = None
        self._handlers: Dict[str, Callable[[Event], None]] = {}

    def publish(self, channel: str, event: Event):
        self.redis.publish(channel, event.to_json())

    def publish_results(self, results: PublishedResults):
        try:
            self.publish(RESULTS_CHANNEL, results_published_event(results))
        except redis.RedisError:
            logger.exception(f"Failed to push results v{results.version}")

    def subscribe(self, channel: str, handler: Callable[[Event], None]):
        if self._pubsub is None:
            self._pubsub = self.redis.pubsub(ignore_subscribe_messages=True)

        self._handlers[channel] = handler
        self._pubsub.subscribe(**{channel: self._message_handler})

    def subscribe_results(self, handler: Callable[[PublishedResults], None]):
        def on_event(event: Event):
            if event.type == EventType.RESULTS_PUBLISHED:
                handler(PublishedResults.from_dict(event.data))

        self.subscribe(RESULTS_CHANNEL, on_event)

    def _message_handler(self, message):
        if message['type'] == 'message':
            channel = message['channel']
            if channel in self._handlers:
                try:
                    event = Event.from_json(message['data'])
                    self._handlers[channel](event)
                except Exception:
                    logger.exception(f"Error handling message on {channel}")

    def start_listening(self):
        if self._pubsub is None or self._listener_thread is not None:
            return
        self._listener_thread = self._pubsub.run_in_thread(sleep_time=0.1, daemon=True)

    def stop_listening(self):
        if self._listener_thread is not None:
            self._listener_thread.stop()
            self._listener_thread = None
        if self._pubsub:
            self._pubsub.close()
            self._pubsub = None
