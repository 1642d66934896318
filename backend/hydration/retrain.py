"""
retrain.py — Adaptive Recentering of Reference Clusters
========================================================

Pulls recent labelled readings from the reading store and feeds them to
ClusterClassifier.adapt(), then persists the new cluster snapshot.

Can be run standalone against the Firebase store:
    python -m backend.hydration.retrain

Or called programmatically (this is what the /retrain endpoint does):
    from backend.hydration.retrain import retrain_clusters
    retrain_clusters(classifier, store)

Retraining flow:
    1. Fetch readings captured within the lookback window.
    2. Drop records without an L*a*b* value or a 1-10 score.
    3. Skip if fewer than RETRAIN_MIN_SAMPLES remain.
    4. adapt() the classifier and save the snapshot with joblib.
    5. Announce the new cluster set to the notifier, if one is given.
"""

import logging
import os
import sys
from datetime import timedelta
from typing import Optional

import pandas as pd

from . import config
from .classifier import ClusterClassifier
from .models import LabColor, ReferenceCluster
from .utils import ensure_saved_dir, setup_logging

logger = logging.getLogger("hydration.retrain")


def prepare_training_samples(records: list[dict]) -> list[dict]:
    """
    Turn stored reading records into ``{"lab", "score"}`` samples.

    Records missing any of l/a/b or score, with non-numeric values, or with
    a score outside 1-10 are dropped.
    """
    if not records:
        return []

    rows = []
    for record in records:
        lab = record.get("lab")
        if not isinstance(lab, dict):
            lab = {}
        rows.append({
            "l": lab.get("l"),
            "a": lab.get("a"),
            "b": lab.get("b"),
            "score": record.get("score"),
        })

    df = pd.DataFrame(rows, columns=["l", "a", "b", "score"])
    df = df.apply(pd.to_numeric, errors="coerce")

    before = len(df)
    df = df.dropna()
    df = df[(df["score"] >= 1) & (df["score"] <= 10) & (df["score"] % 1 == 0)]
    dropped = before - len(df)
    if dropped > 0:
        logger.info(f"Removed {dropped} unusable readings "
                    f"({dropped / before * 100:.1f}% of data)")

    return [
        {"lab": LabColor(l=row.l, a=row.a, b=row.b), "score": int(row.score)}
        for row in df.itertuples(index=False)
    ]


def retrain_clusters(classifier: ClusterClassifier, store,
                     lookback_days: int = None,
                     min_samples: int = None,
                     clusters_path: Optional[str] = None,
                     notifier=None) -> Optional[list[ReferenceCluster]]:
    """
    Recenter ``classifier`` from the store's recent labelled readings.

    Args:
        classifier: Classifier whose clusters are updated.
        store: Reading store exposing ``recent_labeled(since)``.
        lookback_days: History window. Defaults to config.RETRAIN_LOOKBACK_DAYS.
        min_samples: Minimum usable readings. Defaults to config.RETRAIN_MIN_SAMPLES.
        clusters_path: Where to save the snapshot; None skips saving.
        notifier: Receives ``publish_clusters_updated(clusters)`` after a
            successful update; optional.

    Returns:
        The updated clusters, or None when there was not enough data.
    """
    lookback_days = lookback_days or config.RETRAIN_LOOKBACK_DAYS
    min_samples = config.RETRAIN_MIN_SAMPLES if min_samples is None else min_samples

    logger.info("Starting colour cluster retraining...")
    since = classifier.clock.now() - timedelta(days=lookback_days)
    samples = prepare_training_samples(store.recent_labeled(since))

    if len(samples) < min_samples:
        logger.warning(f"Insufficient data for cluster retraining "
                       f"({len(samples)} readings, need {min_samples})")
        return None

    clusters = classifier.adapt(samples)

    if clusters_path:
        os.makedirs(os.path.dirname(clusters_path) or ".", exist_ok=True)
        classifier.save_clusters(clusters_path)

    if notifier is not None:
        try:
            notifier.publish_clusters_updated(clusters)
        except Exception as e:
            logger.error(f"Failed to publish cluster update: {e}", exc_info=True)

    logger.info(f"Cluster retraining completed with {len(samples)} data points")
    return clusters


def main() -> int:
    setup_logging()
    ensure_saved_dir()

    from .notifier import MqttNotifier
    from .store import FirebaseReadingStore

    classifier = ClusterClassifier()
    if os.path.exists(config.CLUSTERS_PATH):
        classifier.load_clusters(config.CLUSTERS_PATH)
    else:
        classifier.initialize()

    notifier = MqttNotifier()
    try:
        clusters = retrain_clusters(classifier, FirebaseReadingStore(),
                                    clusters_path=config.CLUSTERS_PATH,
                                    notifier=notifier)
    finally:
        notifier.close()
    return 0 if clusters is not None else 1


# ── CLI entry point ──────────────────────────────────────────────
if __name__ == "__main__":
    sys.exit(main())
