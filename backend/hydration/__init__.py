"""
backend.hydration — Acquisition and Classification Pipeline for PUMA
=====================================================================

This package implements the sensing core of the PUMA hydration monitor:
a TCS34725 colour sensor and a pH sensor wired to an Arduino stream
readings over USB serial, and this pipeline turns them into a bounded
1-10 hydration score with alerts.

Architecture:
    Arduino (TCS34725 + pH sensor) → USB serial → Acquisition Gateway
                                                       ↓
                                              Processing Orchestrator:
                                                1. Wire-format parsing
                                                2. 16-bit / clear-channel normalization
                                                3. 10 s rolling pH window
                                                4. RGB → CIE L*a*b* conversion
                                                5. Nearest-cluster scoring + confidence
                                                6. Alert policy
                                                       ↓
                                 Reading store (Firebase RTDB) + MQTT alert topic

Modules:
    config        — Serial, window, classifier and service constants
    errors        — Pipeline exception taxonomy
    models        — Dataclasses passed between stages
    colorspace    — sRGB → L*a*b* conversion
    classifier    — Reference clusters and nearest-cluster scoring
    windowing     — Time and capacity bounded pH window
    wire          — Serial line parsers and tristimulus normalization
    link          — pyserial wrapper and device auto-detection
    clock         — Wall clock with cancellable sleeps
    synthetic     — Weighted synthetic readings when no device is present
    gateway       — Connection state machine and one-shot readings
    alerts        — Alert policy and score recommendations
    orchestrator  — Per-sample control loop and upstream operations
    retrain       — Adaptive recentering of reference clusters
    store         — Reading persistence collaborators
    notifier      — MQTT reading, alert and cluster-update publisher
    service       — Flask HTTP surface
    utils         — Logging helpers
"""

__version__ = "1.0.0"
__author__ = "PUMA Hydration Team"
