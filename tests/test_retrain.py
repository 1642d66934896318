from datetime import timedelta

from backend.hydration.classifier import ClusterClassifier
from backend.hydration.models import LabColor
from backend.hydration.retrain import prepare_training_samples, retrain_clusters
from backend.hydration.store import MemoryReadingStore
from tests.conftest import RecordingNotifier


def test_prepare_training_samples_drops_unusable_records():
    records = [
        {"score": 4, "lab": {"l": 80.0, "a": 1.0, "b": 45.0}},
        {"score": "7", "lab": {"l": "60.5", "a": "9", "b": "55"}},
        {"score": 4, "lab": {"l": 80.0, "a": 1.0}},
        {"score": 11, "lab": {"l": 80.0, "a": 1.0, "b": 45.0}},
        {"score": 2.5, "lab": {"l": 80.0, "a": 1.0, "b": 45.0}},
        {"score": None, "lab": {"l": 80.0, "a": 1.0, "b": 45.0}},
        {"score": 3, "lab": "not-a-dict"},
        {"score": 3, "lab": {"l": "bright", "a": 0, "b": 0}},
    ]

    samples = prepare_training_samples(records)

    assert samples == [
        {"lab": LabColor(80.0, 1.0, 45.0), "score": 4},
        {"lab": LabColor(60.5, 9.0, 55.0), "score": 7},
    ]


def test_prepare_training_samples_handles_empty_input():
    assert prepare_training_samples([]) == []


def test_retrain_only_uses_lookback_window(clock):
    store = MemoryReadingStore()
    old = (clock.now() - timedelta(days=30)).isoformat()
    recent = clock.now().isoformat()
    for _ in range(5):
        store.save({"score": 5, "lab": {"l": 20.0, "a": 0.0, "b": 0.0}, "captured_at": old})
    for _ in range(4):
        store.save({"score": 5, "lab": {"l": 20.0, "a": 0.0, "b": 0.0}, "captured_at": recent})

    classifier = ClusterClassifier(clock=clock)
    classifier.initialize()

    assert retrain_clusters(classifier, store, lookback_days=7, min_samples=5) is None

    clusters = retrain_clusters(classifier, store, lookback_days=7, min_samples=4)
    cluster5 = next(c for c in clusters if c.score == 5)
    assert cluster5.sample_count == 104


def test_retrain_without_path_does_not_persist(clock, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    store = MemoryReadingStore()
    store.save({"score": 1, "lab": {"l": 99.0, "a": 0.0, "b": 5.0},
                "captured_at": clock.now().isoformat()})
    classifier = ClusterClassifier(clock=clock)
    classifier.initialize()

    assert retrain_clusters(classifier, store, min_samples=1) is not None
    assert list(tmp_path.iterdir()) == []


def test_retrain_announces_updated_clusters(clock):
    store = MemoryReadingStore()
    store.save({"score": 6, "lab": {"l": 40.0, "a": 12.0, "b": 50.0},
                "captured_at": clock.now().isoformat()})
    classifier = ClusterClassifier(clock=clock)
    classifier.initialize()
    notifier = RecordingNotifier()

    clusters = retrain_clusters(classifier, store, min_samples=1, notifier=notifier)

    assert notifier.cluster_updates == [clusters]


def test_insufficient_data_announces_nothing(clock):
    classifier = ClusterClassifier(clock=clock)
    classifier.initialize()
    notifier = RecordingNotifier()

    assert retrain_clusters(classifier, MemoryReadingStore(), min_samples=1,
                            notifier=notifier) is None
    assert notifier.cluster_updates == []


def test_failed_announcement_keeps_new_clusters(clock):
    class BrokenNotifier:
        def publish_clusters_updated(self, clusters):
            raise ConnectionError("broker down")

    store = MemoryReadingStore()
    store.save({"score": 6, "lab": {"l": 40.0, "a": 12.0, "b": 50.0},
                "captured_at": clock.now().isoformat()})
    classifier = ClusterClassifier(clock=clock)
    classifier.initialize()

    clusters = retrain_clusters(classifier, store, min_samples=1, notifier=BrokenNotifier())

    assert clusters is not None
    assert classifier.clusters() == clusters
