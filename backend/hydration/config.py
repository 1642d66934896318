"""
config.py — Pipeline Configuration Constants
=============================================

Centralizes the serial link settings, window sizes, classifier constants
and service endpoints used by the hydration pipeline. Deployment inputs
can be overridden through environment variables.

Sensor hardware:
- TCS34725 RGB + clear colour sensor (8-bit or 16-bit channel counts)
- Analog pH sensor read through the Arduino ADC
- Readings arrive as newline-framed text roughly once per second
"""

import os


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes")


# ═══════════════════════════════════════════════════════════════════
# SERIAL LINK
# ═══════════════════════════════════════════════════════════════════

# Endpoint used when auto-detection is off or finds nothing.
SERIAL_PORT = os.environ.get("ARDUINO_PORT", "COM3")
SERIAL_BAUD_RATE = int(os.environ.get("ARDUINO_BAUD_RATE", "9600"))
SERIAL_AUTO_DETECT = _env_bool("ARDUINO_AUTO_DETECT")

# readline() gives up after this long so no read blocks indefinitely.
SERIAL_READ_TIMEOUT_SECONDS = 1.0

# Substrings matched (case-insensitive) against a port's manufacturer and
# description, plus USB vendor ids, to recognise the sensor board.
KNOWN_DEVICE_SIGNATURES = ("arduino", "ch340", "cp210")
KNOWN_VENDOR_IDS = (0x2341,)

# ═══════════════════════════════════════════════════════════════════
# RECONNECTION
# ═══════════════════════════════════════════════════════════════════

# 5 attempts × 5 s = at most 25 s before the gateway gives up and
# stays DISCONNECTED until explicitly re-initialized.
MAX_RECONNECT_ATTEMPTS = int(os.environ.get("ARDUINO_MAX_RECONNECT_ATTEMPTS", "5"))
RECONNECT_DELAY_SECONDS = float(os.environ.get("ARDUINO_RECONNECT_DELAY", "5.0"))

# ═══════════════════════════════════════════════════════════════════
# ONE-SHOT COMPREHENSIVE READING
# ═══════════════════════════════════════════════════════════════════

COLLECTION_WINDOW_SECONDS = 5.0
COLLECTION_POLL_SECONDS = 0.5

# Written to the device every poll interval during a one-shot reading.
# Empty means the firmware streams on its own.
SAMPLE_REQUEST_COMMAND = os.environ.get("ARDUINO_SAMPLE_COMMAND", "")

# Synthetic readings generated per one-shot window when no device is attached.
SYNTHETIC_SAMPLE_COUNT = 10

# Continuous synthetic feed for device-less runs of the service.
SYNTHETIC_FEED_ENABLED = _env_bool("HYDRATION_SYNTHETIC_FEED")
SYNTHETIC_FEED_INTERVAL_SECONDS = 2.0

# ═══════════════════════════════════════════════════════════════════
# pH WINDOW
# ═══════════════════════════════════════════════════════════════════

PH_WINDOW_SECONDS = float(os.environ.get("PH_WINDOW_SECONDS", "10"))
PH_WINDOW_CAPACITY = int(os.environ.get("PH_WINDOW_CAPACITY", "100"))

# Reported when the window is empty.
NEUTRAL_PH = 7.0

PH_MIN = 0.0
PH_MAX = 14.0

# ═══════════════════════════════════════════════════════════════════
# COLOUR CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════

# Largest ΔE (CIE76) expected between a reading and its nearest cluster.
# Empirical; distances at or beyond it map to near-zero confidence.
MAX_EXPECTED_DISTANCE = 100.0

# Slope of the logistic curve that maps normalized distance to confidence.
CONFIDENCE_STEEPNESS = 10.0

# Confidence reported when the distance itself is not finite.
FALLBACK_CONFIDENCE = 0.5

# Observation weight given to each seeded reference cluster.
SEED_SAMPLE_COUNT = 100

# ═══════════════════════════════════════════════════════════════════
# RETRAINING / PERSISTENCE PATHS
# ═══════════════════════════════════════════════════════════════════

_PKG_DIR = os.path.dirname(os.path.abspath(__file__))

SAVED_DIR = os.path.join(_PKG_DIR, "saved")

# joblib snapshot of the reference clusters after retraining
CLUSTERS_PATH = os.path.join(SAVED_DIR, "clusters.pkl")

RETRAIN_LOOKBACK_DAYS = 7
RETRAIN_MIN_SAMPLES = 10

# ═══════════════════════════════════════════════════════════════════
# FIREBASE (READING STORE)
# ═══════════════════════════════════════════════════════════════════

FIREBASE_READINGS_PATH = "/hydration/readings"
FIREBASE_DATABASE_URL = os.environ.get(
    "FIREBASE_DATABASE_URL", "https://puma-hydration-default-rtdb.firebaseio.com"
)
FIREBASE_CREDENTIALS_PATH = os.environ.get(
    "FIREBASE_CREDENTIALS_PATH",
    os.path.join(_PKG_DIR, "..", "serviceAccountKey.json"),
)

# ═══════════════════════════════════════════════════════════════════
# MQTT (READINGS, ALERTS, CLUSTER UPDATES)
# ═══════════════════════════════════════════════════════════════════

MQTT_READING_TOPIC = os.environ.get("MQTT_READING_TOPIC", "hydration/readings")
MQTT_ALERT_TOPIC = os.environ.get("MQTT_ALERT_TOPIC", "hydration/alerts")
MQTT_CLUSTERS_TOPIC = os.environ.get("MQTT_CLUSTERS_TOPIC", "hydration/clusters")
MQTT_BROKER_HOST = os.environ.get("MQTT_BROKER_HOST", "localhost")
MQTT_BROKER_PORT = int(os.environ.get("MQTT_BROKER_PORT", "1883"))

# ═══════════════════════════════════════════════════════════════════
# HTTP SERVICE / LOGGING
# ═══════════════════════════════════════════════════════════════════

SERVICE_PORT = int(os.environ.get("HYDRATION_SERVICE_PORT", "5050"))

# Log level for the pipeline (DEBUG, INFO, WARNING, ERROR, CRITICAL)
LOG_LEVEL = os.environ.get("HYDRATION_LOG_LEVEL", "INFO")
