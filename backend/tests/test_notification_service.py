import json

import pytest
from services.notification_service import NotificationManager


class TestNotificationManager:
    """Tests pour la diffusion des événements de comptage"""

    @pytest.fixture
    def manager(self):
        return NotificationManager(queue_size=2, keepalive_seconds=1)

    def test_publish_without_subscribers(self, manager):
        assert manager.publish('label_inserted', {'nomorLabel': 'F.000123'}) == 0
        assert manager.get_stats()['published'] == 1

    def test_each_subscriber_receives_event(self, manager):
        _, first = manager.subscribe()
        _, second = manager.subscribe()

        delivered = manager.publish('label_inserted', {'nomorLabel': 'F.000123'})

        assert delivered == 2
        assert first.get_nowait()['data'] == {'nomorLabel': 'F.000123'}
        assert second.get_nowait()['type'] == 'label_inserted'

    def test_full_queue_drops_event(self, manager):
        """Test une file pleine perd l'événement sans bloquer la diffusion"""
        _, slow = manager.subscribe()
        for n in range(3):
            manager.publish('label_inserted', {'n': n})

        assert slow.qsize() == 2
        assert manager.get_stats()['dropped'] == 1

    def test_unsubscribe(self, manager):
        subscriber_id, _ = manager.subscribe()
        manager.unsubscribe(subscriber_id)

        assert manager.get_stats()['active_subscribers'] == 0
        assert manager.publish('label_inserted', {}) == 0

    def test_stream_formats_server_sent_events(self, manager):
        subscriber_id, subscriber_queue = manager.subscribe()
        manager.publish('label_inserted', {'nomorLabel': 'B.0000000001', 'berat': 30.0})

        chunks = list(manager.stream(subscriber_id, subscriber_queue, max_events=1))

        assert chunks[0] == ': connected\n\n'
        event_line, data_line, _, _ = chunks[1].split('\n')
        assert event_line == 'event: label_inserted'
        assert json.loads(data_line[len('data: '):]) == {'nomorLabel': 'B.0000000001', 'berat': 30.0}
        # Flux terminé : l'abonné est retiré
        assert manager.get_stats()['active_subscribers'] == 0

    def test_stream_keepalive(self, manager):
        """Test commentaire keepalive quand aucun événement n'arrive"""
        subscriber_id, subscriber_queue = manager.subscribe()
        stream = manager.stream(subscriber_id, subscriber_queue)

        assert next(stream) == ': connected\n\n'
        assert next(stream) == ': keepalive\n\n'
        stream.close()

        assert manager.get_stats()['active_subscribers'] == 0
