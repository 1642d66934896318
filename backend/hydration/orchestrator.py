"""
orchestrator.py — Per-Sample Processing Loop
=============================================

Turns each RawSample into a ProcessedReading and hands it to the
collaborators:

    RawSample → push pH into PhWindow → classify colour
              → ProcessedReading (window average + score/confidence)
              → alert policy → store.save()
              → notifier.publish_reading() + notifier.notify() when alerts fired

Also exposes the three upstream operations consumed by the HTTP layer:
trigger_reading(), diagnostics() and retrain().

Every orchestrator owns its own window and classifier, so several
independent pipelines can run in one process.
"""

import logging
import os
import threading
from typing import Optional

from .alerts import evaluate_alerts, recommendations_for
from .classifier import ClusterClassifier
from .errors import NotInitialized
from .gateway import AcquisitionGateway
from .models import ProcessedReading, RawSample
from .retrain import retrain_clusters
from .windowing import PhWindow

logger = logging.getLogger("hydration.orchestrator")

DEVICE_ID = "arduino-tcs34725"


class ProcessingOrchestrator:
    """
    Per-sample control loop for the hydration pipeline.

    Usage:
        orchestrator = build_orchestrator()
        orchestrator.gateway.initialize()
        orchestrator.run(stop_event)
    """

    def __init__(self, classifier: ClusterClassifier, window: PhWindow,
                 gateway: Optional[AcquisitionGateway] = None,
                 store=None, notifier=None,
                 clusters_path: Optional[str] = None):
        # store and notifier may be None
        self.classifier = classifier
        self.window = window
        self.gateway = gateway
        self.store = store
        self.notifier = notifier
        self.clusters_path = clusters_path
        self._last_processed = None

    # ── Per-sample processing ─────────────────────────────────────

    def process(self, sample: RawSample) -> Optional[ProcessedReading]:
        """
        Run one sample through the pipeline.

        Returns:
            The ProcessedReading, or None when classification failed.
            Never raises for per-sample problems.
        """
        reading, _ = self._process(sample)
        return reading

    def _process(self, sample: RawSample) -> tuple:
        self.window.push(sample.acidity, sample.captured_at)

        try:
            classification = self.classifier.classify(sample.color)
        except NotInitialized as e:
            logger.error(f"Sample dropped: {e}")
            return None, []

        reading = ProcessedReading(
            ph_average=self.window.average(),
            classification=classification,
            color=sample.color,
            captured_at=sample.captured_at,
        )
        alerts = evaluate_alerts(reading)
        self._last_processed = reading.captured_at

        logger.info(f"Processed reading: pH avg={reading.ph_average}, "
                    f"score={reading.score}, confidence={reading.confidence:.3f}, "
                    f"alerts={len(alerts)}")

        self._dispatch(reading, alerts)
        return reading, alerts

    def _dispatch(self, reading: ProcessedReading, alerts: list) -> None:
        if self.store is not None:
            record = reading.to_dict()
            record.update({
                "device_id": DEVICE_ID,
                "recommendations": recommendations_for(reading.score),
                "alerts": [a.to_dict() for a in alerts],
            })
            try:
                self.store.save(record)
            except Exception as e:
                logger.error(f"Failed to store reading: {e}", exc_info=True)

        if self.notifier is None:
            return
        try:
            self.notifier.publish_reading(reading)
        except Exception as e:
            logger.error(f"Failed to publish reading: {e}", exc_info=True)
        if alerts:
            try:
                self.notifier.notify(reading, alerts)
            except Exception as e:
                logger.error(f"Failed to publish alerts: {e}", exc_info=True)

    def run(self, stop_event: threading.Event = None) -> None:
        """Continuous ingestion: feed every gateway sample into process()."""
        if self.gateway is None:
            raise RuntimeError("No acquisition gateway configured")
        self.gateway.run(self.process, stop_event)

    def run_synthetic(self, stop_event: threading.Event = None,
                      interval: float = None) -> None:
        """Device-less ingestion from the gateway's synthetic feed."""
        if self.gateway is None:
            raise RuntimeError("No acquisition gateway configured")
        self.gateway.run_synthetic(self.process, stop_event, interval)

    # ── Upstream operations ───────────────────────────────────────

    def trigger_reading(self) -> dict:
        """
        One-shot comprehensive reading.

        Returns:
            ``{"success": True, "data": {...}}`` with the averaged reading,
            score, confidence, recommendations and alerts, or
            ``{"success": False, "error": "..."}``.
        """
        if self.gateway is None:
            return {"success": False, "error": "No acquisition gateway configured"}

        result = self.gateway.comprehensive_reading(self.classifier)
        payload = result.to_dict()
        if not result.success:
            return payload

        reading, alerts = self._process(result.sample)
        if reading is not None:
            payload["data"]["ph_average"] = reading.ph_average
            payload["data"]["alerts"] = [a.to_dict() for a in alerts]
        logger.info(f"Manual reading completed: score={payload['data']['score']}")
        return payload

    def diagnostics(self) -> dict:
        """Window snapshot, classifier status and link status."""
        return {
            "ph_window": self.window.stats(),
            "classifier": {
                "initialized": self.classifier.is_initialized(),
                "clusters": len(self.classifier.clusters()),
            },
            "connection": (self.gateway.connection_info()
                           if self.gateway is not None else None),
            "last_processed": (self._last_processed.isoformat()
                               if self._last_processed else None),
        }

    def retrain(self, lookback_days: int = None, min_samples: int = None) -> dict:
        """Recenter the reference clusters from recent stored readings."""
        if self.store is None:
            return {"success": False, "error": "No reading store configured"}

        clusters = retrain_clusters(self.classifier, self.store,
                                    lookback_days=lookback_days,
                                    min_samples=min_samples,
                                    notifier=self.notifier,
                                    clusters_path=self.clusters_path)
        if clusters is None:
            return {"success": False, "error": "Insufficient data for cluster retraining"}
        return {"success": True, "clusters": [c.to_dict() for c in clusters]}


def build_orchestrator(gateway: AcquisitionGateway = None, store=None,
                       notifier=None, clusters_path: str = None,
                       window_seconds: float = None,
                       window_capacity: int = None) -> ProcessingOrchestrator:
    """
    Wire a fresh, independent pipeline.

    Loads the saved cluster snapshot from ``clusters_path`` when it exists,
    otherwise seeds the default clusters.
    """
    classifier = ClusterClassifier()
    if clusters_path and os.path.exists(clusters_path):
        classifier.load_clusters(clusters_path)
    classifier.initialize()

    return ProcessingOrchestrator(
        classifier=classifier,
        window=PhWindow(window_seconds, window_capacity),
        gateway=gateway if gateway is not None else AcquisitionGateway(),
        store=store,
        notifier=notifier,
        clusters_path=clusters_path,
    )
