"""
notifier.py — MQTT Event Publisher
===================================

Broadcasts pipeline events so the dashboard and phone clients can follow
them live:

    config.MQTT_READING_TOPIC   — every processed reading
    config.MQTT_ALERT_TOPIC     — the alert set of a reading, when non-empty
    config.MQTT_CLUSTERS_TOPIC  — the cluster set after a successful retrain

The broker connection is opened lazily on the first publish.
"""

import json
import logging

import paho.mqtt.client as mqtt

from . import config
from .models import Alert, ProcessedReading, ReferenceCluster

logger = logging.getLogger("hydration.notifier")


class MqttNotifier:
    """
    Attributes:
        reading_topic, alert_topic, clusters_topic (str): Event topics.
        client: paho-mqtt client, created on first use unless injected.
    """

    def __init__(self, host: str = None, port: int = None,
                 reading_topic: str = None, alert_topic: str = None,
                 clusters_topic: str = None, client=None):
        self.host = host or config.MQTT_BROKER_HOST
        self.port = port or config.MQTT_BROKER_PORT
        self.reading_topic = reading_topic or config.MQTT_READING_TOPIC
        self.alert_topic = alert_topic or config.MQTT_ALERT_TOPIC
        self.clusters_topic = clusters_topic or config.MQTT_CLUSTERS_TOPIC
        self.client = client

    def _get_client(self):
        if self.client is None:
            client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2,
                                 client_id="puma-hydration-pipeline")
            client.connect(self.host, self.port, 60)
            client.loop_start()
            self.client = client
            logger.info(f"MQTT client connected to {self.host}:{self.port}")
        return self.client

    def _publish(self, topic: str, payload: dict, qos: int) -> None:
        self._get_client().publish(topic, json.dumps(payload), qos=qos)

    def publish_reading(self, reading: ProcessedReading) -> None:
        """Broadcast one processed reading. Fire-and-forget (qos 0)."""
        self._publish(self.reading_topic, reading.to_dict(), qos=0)
        logger.debug(f"Reading published: topic={self.reading_topic} score={reading.score}")

    def notify(self, reading: ProcessedReading, alerts: list[Alert]) -> None:
        """Publish ``alerts`` for ``reading``; does nothing for an empty set."""
        if not alerts:
            return

        payload = {
            "timestamp": reading.captured_at.isoformat(),
            "alerts": [a.to_dict() for a in alerts],
            "data": {
                "ph": reading.ph_average,
                "score": reading.score,
                "confidence": round(reading.confidence, 4),
            },
        }
        self._publish(self.alert_topic, payload, qos=1)
        logger.warning(f"Alerts published: topic={self.alert_topic} "
                       f"kinds={[a.kind for a in alerts]}")

    def publish_clusters_updated(self, clusters: list[ReferenceCluster]) -> None:
        """Announce a recentered cluster set."""
        self._publish(self.clusters_topic,
                      {"clusters": [c.to_dict() for c in clusters]}, qos=1)
        logger.info(f"Cluster update published: topic={self.clusters_topic} "
                    f"({len(clusters)} clusters)")

    def close(self) -> None:
        if self.client is not None:
            self.client.loop_stop()
            self.client.disconnect()
            self.client = None
