"""
alerts.py — Alert Policy and Score Recommendations
===================================================

Pure functions of a ProcessedReading. Several alerts can fire for the
same reading; the policy returns all of them and never raises.

    pH < 4.5 or > 8.5        → extreme_acidity
    score ≥ 8                → critical
    score ≥ 6 (and < 8)      → concerning
    confidence < 0.5         → low_confidence
"""

import logging

from .models import Alert, ProcessedReading

logger = logging.getLogger("hydration.alerts")

# Alert kinds
EXTREME_ACIDITY = "extreme_acidity"
CRITICAL = "critical"
CONCERNING = "concerning"
LOW_CONFIDENCE = "low_confidence"

PH_ACIDIC_LIMIT = 4.5
PH_ALKALINE_LIMIT = 8.5
CRITICAL_SCORE = 8
CONCERNING_SCORE = 6
LOW_CONFIDENCE_LIMIT = 0.5

# Score 1 is the healthiest reading, 10 the worst.
RECOMMENDATIONS = {
    1: ["Excellent hydration! Keep up the good work."],
    2: ["Very good hydration level."],
    3: ["Good hydration. Continue drinking water regularly."],
    4: ["Adequate hydration. Consider increasing water intake slightly."],
    5: ["Fair hydration. Increase water consumption."],
    6: ["Getting dehydrated. Drink more water throughout the day."],
    7: ["Concerning dehydration. Increase fluid intake immediately."],
    8: ["Severely dehydrated. Seek medical attention if symptoms persist.",
        "Drink water immediately and monitor closely."],
    9: ["Critical dehydration or possible medical condition.",
        "Consult healthcare provider immediately."],
    10: ["Emergency: Severe dehydration or medical condition.",
         "Seek immediate medical attention."],
}

FALLBACK_RECOMMENDATION = ["Consult healthcare provider for interpretation."]


def recommendations_for(score: int) -> list[str]:
    """Human-readable advice for a 1-10 score."""
    return list(RECOMMENDATIONS.get(score, FALLBACK_RECOMMENDATION))


def evaluate_alerts(reading: ProcessedReading) -> list[Alert]:
    """Return every alert the reading triggers, possibly none."""
    alerts = []

    if reading.ph_average < PH_ACIDIC_LIMIT:
        alerts.append(Alert(EXTREME_ACIDITY,
                            "Very acidic urine detected. Consider consulting healthcare provider."))
    elif reading.ph_average > PH_ALKALINE_LIMIT:
        alerts.append(Alert(EXTREME_ACIDITY,
                            "Very alkaline urine detected. Consider consulting healthcare provider."))

    if reading.score >= CRITICAL_SCORE:
        alerts.append(Alert(CRITICAL,
                            "Critical dehydration or health concern detected. Seek medical attention."))
    elif reading.score >= CONCERNING_SCORE:
        alerts.append(Alert(CONCERNING,
                            "Concerning hydration level. Increase fluid intake."))

    if reading.confidence < LOW_CONFIDENCE_LIMIT:
        alerts.append(Alert(LOW_CONFIDENCE,
                            "Color reading has low confidence. Ensure proper lighting and clean sensor."))

    if alerts:
        logger.warning(f"Health alerts triggered: {[a.kind for a in alerts]}")
    return alerts
