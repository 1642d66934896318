"""
classifier.py — Nearest-Cluster Hydration Scoring
==================================================

Holds one reference cluster per point on the 1-10 hydration scale and
scores a reading by its nearest centroid in CIE L*a*b*.

Polarity:
    Score 1 is the healthiest reading (very pale yellow) and score 10
    the worst (dark brown). The alert policy and the recommendation table
    in alerts.py use the same polarity.

Confidence:
    d_norm     = min(distance / MAX_EXPECTED_DISTANCE, 1)
    confidence = 1 / (1 + exp(10 · (d_norm − 0.5)))
    A perfect match scores ≈0.993; a distance of 50 scores 0.5.

Adaptive updates:
    The cluster set lives in an immutable snapshot. adapt() builds a new
    one and swaps the reference, so classify() never sees a half-updated
    centroid.
"""

import logging
import threading
from dataclasses import replace
from typing import Iterable, Optional

import joblib
import numpy as np
import pandas as pd

from . import config
from .clock import SystemClock
from .colorspace import rgb_to_lab, to_lab
from .errors import NotInitialized
from .models import ClassificationResult, LabColor, NormalizedColor, ReferenceCluster

logger = logging.getLogger("hydration.classifier")

# (score, seed sRGB, description)
SEED_TABLE = [
    (1, (255, 255, 230), "Excellent hydration - very pale yellow"),
    (2, (255, 250, 205), "Great hydration - pale yellow"),
    (3, (255, 245, 180), "Good hydration - light yellow"),
    (4, (255, 235, 160), "Fair hydration - yellow"),
    (5, (255, 220, 120), "Adequate hydration - medium yellow"),
    (6, (255, 200, 80), "Borderline - dark yellow"),
    (7, (255, 180, 50), "Mild dehydration - amber"),
    (8, (200, 140, 30), "Moderate dehydration - dark amber"),
    (9, (160, 100, 20), "Severe dehydration - brown"),
    (10, (120, 70, 15), "Critical dehydration - dark brown"),
]


def seed_clusters(now=None) -> list[ReferenceCluster]:
    """Build the default reference clusters from SEED_TABLE."""
    now = now or SystemClock().now()
    return [
        ReferenceCluster(
            score=score,
            centroid=rgb_to_lab(*rgb),
            sample_count=config.SEED_SAMPLE_COUNT,
            description=description,
            last_updated=now,
        )
        for score, rgb, description in SEED_TABLE
    ]


def confidence_from_distance(distance: float,
                             max_expected_distance: float = None,
                             steepness: float = None) -> float:
    """Map a ΔE distance onto a [0, 1] confidence with a logistic curve."""
    max_expected_distance = max_expected_distance or config.MAX_EXPECTED_DISTANCE
    steepness = steepness or config.CONFIDENCE_STEEPNESS

    if not np.isfinite(distance):
        return config.FALLBACK_CONFIDENCE

    normalized = min(distance / max_expected_distance, 1.0)
    confidence = 1.0 / (1.0 + np.exp(steepness * (normalized - 0.5)))
    return float(np.clip(confidence, 0.0, 1.0))


def _lab_of(value) -> LabColor:
    if isinstance(value, LabColor):
        return value
    if isinstance(value, dict):
        return LabColor(l=float(value["l"]), a=float(value["a"]), b=float(value["b"]))
    l_val, a_val, b_val = value
    return LabColor(l=float(l_val), a=float(a_val), b=float(b_val))


class _ClusterSnapshot:
    """Sorted, read-only cluster set plus its centroid matrix."""

    __slots__ = ("clusters", "centroids")

    def __init__(self, clusters: Iterable[ReferenceCluster]):
        self.clusters = tuple(sorted(clusters, key=lambda c: c.score))
        self.centroids = np.array(
            [[c.centroid.l, c.centroid.a, c.centroid.b] for c in self.clusters],
            dtype=np.float64,
        ).reshape(-1, 3)


class ClusterClassifier:
    """
    Nearest-centroid classifier over the reference cluster set.

    Usage:
        classifier = ClusterClassifier()
        classifier.initialize()
        result = classifier.classify(NormalizedColor(255, 250, 205))
    """

    def __init__(self, clusters: Optional[Iterable[ReferenceCluster]] = None,
                 max_expected_distance: float = None,
                 clock=None):
        """
        Args:
            clusters: Initial cluster set. Empty until initialize() or
                set_clusters() when omitted.
            max_expected_distance: ΔE that maps to near-zero confidence.
                Defaults to config.MAX_EXPECTED_DISTANCE.
            clock: Source of ``now()`` for cluster timestamps.
        """
        self.max_expected_distance = max_expected_distance or config.MAX_EXPECTED_DISTANCE
        self.clock = clock or SystemClock()
        self._write_lock = threading.Lock()
        self._snapshot = _ClusterSnapshot(())
        if clusters is not None:
            self.set_clusters(clusters)

    def initialize(self) -> None:
        """Load the seed clusters if no cluster set is present yet."""
        if not self._snapshot.clusters:
            self.set_clusters(seed_clusters(self.clock.now()))
            logger.info("Initialized with default hydration clusters (1-10 scale)")
        logger.info(f"Colour classifier ready with {len(self._snapshot.clusters)} clusters")

    def set_clusters(self, clusters: Iterable[ReferenceCluster]) -> None:
        """
        Replace the cluster set.

        Raises:
            ValueError: If two clusters share a score.
        """
        clusters = list(clusters)
        scores = [c.score for c in clusters]
        if len(scores) != len(set(scores)):
            raise ValueError(f"Duplicate cluster scores in {sorted(scores)}")
        with self._write_lock:
            self._snapshot = _ClusterSnapshot(clusters)
        logger.info(f"Cluster set replaced: {len(clusters)} clusters loaded")

    def clusters(self) -> list[ReferenceCluster]:
        return list(self._snapshot.clusters)

    def is_initialized(self) -> bool:
        return bool(self._snapshot.clusters)

    # ── Classification ────────────────────────────────────────────

    def classify(self, color: NormalizedColor) -> ClassificationResult:
        """
        Score a colour by its nearest reference centroid.

        Ties go to the lower score, since clusters are scanned in
        ascending score order and argmin returns the first minimum.

        Raises:
            NotInitialized: If no clusters are loaded.
        """
        snapshot = self._snapshot
        if not snapshot.clusters:
            raise NotInitialized("Colour classifier has no reference clusters loaded")

        lab = to_lab(color)
        point = np.array([lab.l, lab.a, lab.b], dtype=np.float64)
        distances = np.sqrt(((snapshot.centroids - point) ** 2).sum(axis=1))
        distances = np.where(np.isfinite(distances), distances, np.inf)

        index = int(np.argmin(distances))
        distance = float(distances[index])
        confidence = confidence_from_distance(distance, self.max_expected_distance)
        nearest = snapshot.clusters[index]

        logger.debug(
            f"Classified RGB({color.r},{color.g},{color.b}) -> score {nearest.score}, "
            f"distance {distance:.2f}, confidence {confidence:.3f}"
        )
        return ClassificationResult(
            score=nearest.score,
            confidence=confidence,
            lab=lab,
            distance=distance,
        )

    # ── Adaptive update ───────────────────────────────────────────

    def adapt(self, samples: list[dict]) -> list[ReferenceCluster]:
        """
        Recenter clusters from newly labelled samples.

        For each score present in ``samples``:
            new = old · (n_old / n_total) + mean(new samples) · (n_new / n_total)
        Clusters without new samples are carried over unchanged.

        Args:
            samples: Dicts with ``lab`` (LabColor, dict or 3-tuple) and
                ``score`` (int).

        Returns:
            The cluster set after the update.
        """
        if not samples:
            return self.clusters()

        frame = pd.DataFrame([
            {"score": int(s["score"]), **_lab_of(s["lab"]).to_dict()}
            for s in samples
        ])
        grouped = frame.groupby("score").agg(
            l=("l", "mean"), a=("a", "mean"), b=("b", "mean"), n=("l", "size"),
        )

        with self._write_lock:
            now = self.clock.now()
            updated = []
            touched = 0
            for cluster in self._snapshot.clusters:
                if cluster.score not in grouped.index:
                    updated.append(cluster)
                    continue

                row = grouped.loc[cluster.score]
                n_new = int(row["n"])
                total = cluster.sample_count + n_new
                w_old = cluster.sample_count / total
                w_new = n_new / total
                centroid = LabColor(
                    l=cluster.centroid.l * w_old + float(row["l"]) * w_new,
                    a=cluster.centroid.a * w_old + float(row["a"]) * w_new,
                    b=cluster.centroid.b * w_old + float(row["b"]) * w_new,
                )
                updated.append(replace(
                    cluster, centroid=centroid, sample_count=total, last_updated=now,
                ))
                touched += 1

            self._snapshot = _ClusterSnapshot(updated)

        logger.info(f"Updated {touched} clusters with {len(samples)} new data points")
        return list(updated)

    # ── Persistence ───────────────────────────────────────────────

    def save_clusters(self, path: str = None) -> None:
        """Serialize the current cluster set with joblib."""
        path = path or config.CLUSTERS_PATH
        joblib.dump(list(self._snapshot.clusters), path)
        logger.info(f"Clusters saved to {path}")

    def load_clusters(self, path: str = None) -> None:
        """Replace the cluster set with one saved by save_clusters()."""
        path = path or config.CLUSTERS_PATH
        self.set_clusters(joblib.load(path))
        logger.info(f"Clusters loaded from {path}")
