"""
Diffusion des événements de comptage aux postes connectés.

Chaque observateur (onglet de supervision, terminal de scan) reçoit sa
propre file ; le flux HTTP (server-sent events) la vide. La diffusion est
au mieux : une file pleine perd l'événement, les abonnés tolèrent les trous
et les doublons.
"""
import json
import logging
import queue
import threading
from datetime import datetime
from typing import Any, Dict, Iterator, Optional

from services.config_service import config_service

logger = logging.getLogger(__name__)


class NotificationManager:
    """Registre des abonnés et publication des événements"""

    def __init__(self, queue_size: int = None, keepalive_seconds: int = None):
        settings = config_service.get_notification_config()
        self.queue_size = queue_size or int(settings.get('queue_size', 100))
        self.keepalive_seconds = keepalive_seconds or int(settings.get('keepalive_seconds', 15))

        self._subscribers: Dict[int, queue.Queue] = {}
        self._lock = threading.Lock()
        self._next_id = 0
        self._published = 0
        self._dropped = 0

    def subscribe(self):
        """Enregistre un nouvel abonné ; retourne (id, file)"""
        with self._lock:
            self._next_id += 1
            subscriber_id = self._next_id
            subscriber_queue = queue.Queue(maxsize=self.queue_size)
            self._subscribers[subscriber_id] = subscriber_queue

        logger.info(f"Abonné {subscriber_id} connecté ({len(self._subscribers)} actifs)")
        return subscriber_id, subscriber_queue

    def unsubscribe(self, subscriber_id: int):
        with self._lock:
            removed = self._subscribers.pop(subscriber_id, None)
        if removed is not None:
            logger.info(f"Abonné {subscriber_id} déconnecté")

    def publish(self, event: str, payload: Dict[str, Any]) -> int:
        """Diffuse un événement à tous les abonnés ; retourne le nombre de livraisons"""
        message = {
            'type': event,
            'data': payload,
            'timestamp': datetime.now().isoformat(),
        }

        with self._lock:
            targets = list(self._subscribers.items())

        delivered = 0
        for subscriber_id, subscriber_queue in targets:
            try:
                subscriber_queue.put_nowait(message)
                delivered += 1
            except queue.Full:
                self._dropped += 1
                logger.warning(f"File pleine pour l'abonné {subscriber_id}, événement {event} perdu")

        self._published += 1
        logger.debug(f"Événement {event} diffusé à {delivered} abonné(s)")
        return delivered

    def stream(self, subscriber_id: int, subscriber_queue: queue.Queue,
               max_events: Optional[int] = None) -> Iterator[str]:
        """Générateur server-sent events pour un abonné"""
        sent = 0
        try:
            yield ': connected\n\n'
            while max_events is None or sent < max_events:
                try:
                    message = subscriber_queue.get(timeout=self.keepalive_seconds)
                except queue.Empty:
                    yield ': keepalive\n\n'
                    continue
                yield self.format_event(message)
                sent += 1
        finally:
            self.unsubscribe(subscriber_id)

    @staticmethod
    def format_event(message: Dict[str, Any]) -> str:
        data = json.dumps(message['data'], default=str)
        return f"event: {message['type']}\ndata: {data}\n\n"

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            active = len(self._subscribers)
        return {
            'active_subscribers': active,
            'published': self._published,
            'dropped': self._dropped,
        }


# Instance globale
notification_manager = NotificationManager()
