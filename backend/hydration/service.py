"""
service.py — Hydration Pipeline HTTP Service (Flask)
=====================================================

Thin HTTP surface over a ProcessingOrchestrator for the dashboard backend.

Endpoints:
    GET  /health             — Service health check
    GET  /status             — pH window snapshot, classifier and link status
    POST /readings/trigger   — One-shot 5-second comprehensive reading
    POST /retrain            — Recenter reference clusters from stored readings

Run:
    python -m backend.hydration.service
    # Starts on port 5050 by default (HYDRATION_SERVICE_PORT env var)
    # HYDRATION_SYNTHETIC_FEED=1 feeds synthetic readings when no board is attached
"""

import logging
import threading

from flask import Flask, jsonify, request

from . import config
from .notifier import MqttNotifier
from .orchestrator import ProcessingOrchestrator, build_orchestrator
from .store import FirebaseReadingStore
from .utils import ensure_saved_dir, setup_logging

logger = logging.getLogger("hydration.service")


def create_app(orchestrator: ProcessingOrchestrator) -> Flask:
    """Build the Flask app around an already-wired orchestrator."""
    app = Flask(__name__)

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({
            "status": "OK",
            "service": "PUMA Hydration Pipeline",
            "classifier": orchestrator.classifier.is_initialized(),
        })

    @app.route("/status", methods=["GET"])
    def status():
        return jsonify(orchestrator.diagnostics())

    @app.route("/readings/trigger", methods=["POST"])
    def trigger_reading():
        """
        Collect for 5 seconds, average, classify and store.

        Returns 200 with the reading payload, or 503 with the failure
        message when nothing could be collected or classified.
        """
        result = orchestrator.trigger_reading()
        return jsonify(result), (200 if result["success"] else 503)

    @app.route("/retrain", methods=["POST"])
    def retrain():
        body = request.get_json(force=True, silent=True) or {}
        try:
            lookback_days = int(body["lookback_days"]) if "lookback_days" in body else None
            min_samples = int(body["min_samples"]) if "min_samples" in body else None
        except (TypeError, ValueError):
            return jsonify({"success": False, "error": "lookback_days and min_samples must be integers"}), 400

        try:
            result = orchestrator.retrain(lookback_days=lookback_days, min_samples=min_samples)
        except Exception as e:
            logger.error(f"Retraining error: {e}", exc_info=True)
            return jsonify({"success": False, "error": str(e)}), 500
        return jsonify(result), (200 if result["success"] else 422)

    return app


def main() -> None:
    setup_logging()
    ensure_saved_dir()

    orchestrator = build_orchestrator(
        store=FirebaseReadingStore(),
        notifier=MqttNotifier(),
        clusters_path=config.CLUSTERS_PATH,
    )

    if orchestrator.gateway.initialize():
        target, name = orchestrator.run, "continuous-acquisition"
    elif config.SYNTHETIC_FEED_ENABLED:
        target, name = orchestrator.run_synthetic, "synthetic-feed"
    else:
        target = None
    if target is not None:
        threading.Thread(target=target, name=name, daemon=True).start()

    app = create_app(orchestrator)
    logger.info(f"Starting hydration service on port {config.SERVICE_PORT}")
    try:
        app.run(host="0.0.0.0", port=config.SERVICE_PORT, debug=False)
    finally:
        orchestrator.gateway.close()
        orchestrator.notifier.close()


if __name__ == "__main__":
    main()
