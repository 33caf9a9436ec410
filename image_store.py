import asyncio
import logging
import random
import string
import threading
import time

import settings

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_image_id(now=None):
    """Timestamp-prefixed id, e.g. ``1718000000000-k3j9x0a1b``."""
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(9))
    return f"{millis}-{suffix}"


def _normalize(image_id):
    if image_id.endswith(".jpg"):
        return image_id[: -len(".jpg")]
    return image_id


class ImageStore:
    """Generated images kept in memory for a while so they can be downloaded."""

    def __init__(self, ttl_seconds=settings.IMAGE_TTL_SECONDS, clock=time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._images = {}
        self._lock = threading.Lock()

    def put(self, data):
        now = self._clock()
        image_id = new_image_id(now)
        with self._lock:
            self._images[image_id] = (now, data)
        logger.info("Stored image %s (%d bytes)", image_id, len(data))
        return image_id

    def get(self, image_id):
        with self._lock:
            entry = self._images.get(_normalize(image_id))
        return entry[1] if entry else None

    def evict_expired(self, now=None):
        now = self._clock() if now is None else now
        with self._lock:
            expired = [
                image_id
                for image_id, (created_at, _) in self._images.items()
                if now - created_at > self.ttl_seconds
            ]
            for image_id in expired:
                del self._images[image_id]
        for image_id in expired:
            logger.info("Cleaned up old image: %s", image_id)
        return expired

    def clear(self):
        with self._lock:
            self._images.clear()

    def __contains__(self, image_id):
        with self._lock:
            return _normalize(image_id) in self._images

    def __len__(self):
        with self._lock:
            return len(self._images)


async def run_cleanup_loop(store, interval=settings.CLEANUP_INTERVAL_SECONDS):
    """Evict expired images every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        store.evict_expired()
