"""Performance metrics and evaluation."""

import numpy as np
from scipy.optimize import linear_sum_assignment
from typing import Dict
from time import perf_counter


class PerformanceMetrics:
    """
    Named wall-clock timers.

    A timer can be started and stopped repeatedly; every stop is kept so
    per-iteration costs can be averaged.
    """

    def __init__(self):
        self.start_times = {}
        self.durations = {}

    def start_timer(self, name: str):
        self.start_times[name] = perf_counter()

    def stop_timer(self, name: str) -> float:
        """Stop timing and return the elapsed milliseconds (0 if never started)."""
        start = self.start_times.pop(name, None)
        if start is None:
            return 0.0
        duration = (perf_counter() - start) * 1000
        self.durations.setdefault(name, []).append(duration)
        return duration

    def get_mean(self, name: str) -> float:
        """Mean of all recorded durations of ``name`` in milliseconds."""
        recorded = self.durations.get(name)
        return float(np.mean(recorded)) if recorded else 0.0

    def get_summary(self) -> Dict[str, float]:
        """Latest duration of every timer."""
        return {name: recorded[-1] for name, recorded in self.durations.items()}


class AccuracyMetrics:
    """Calculate accuracy metrics."""

    @staticmethod
    def calculate_precision_recall(true_positives: int, false_positives: int,
                                   false_negatives: int) -> Dict[str, float]:
        """Calculate precision, recall, and F1 score."""
        precision = true_positives / (true_positives + false_positives) if (true_positives + false_positives) > 0 else 0
        recall = true_positives / (true_positives + false_negatives) if (true_positives + false_negatives) > 0 else 0
        f1 = 2 * (precision * recall) / (precision + recall) if (precision + recall) > 0 else 0

        return {
            'precision': precision,
            'recall': recall,
            'f1_score': f1
        }

    @staticmethod
    def mask_agreement(predicted: np.ndarray, ground_truth: np.ndarray) -> float:
        """Fraction of entries where two boolean masks agree."""
        predicted = np.asarray(predicted, dtype=bool).ravel()
        ground_truth = np.asarray(ground_truth, dtype=bool).ravel()
        if predicted.size == 0:
            return 0.0
        return float(np.mean(predicted == ground_truth))

    @staticmethod
    def inlier_scores(predicted: np.ndarray, ground_truth: np.ndarray) -> Dict[str, float]:
        """Precision/recall of an inlier mask against the true inlier mask."""
        predicted = np.asarray(predicted, dtype=bool).ravel()
        ground_truth = np.asarray(ground_truth, dtype=bool).ravel()
        tp = int(np.sum(predicted & ground_truth))
        fp = int(np.sum(predicted & ~ground_truth))
        fn = int(np.sum(~predicted & ground_truth))
        return AccuracyMetrics.calculate_precision_recall(tp, fp, fn)

    @staticmethod
    def clustering_accuracy(assignments: np.ndarray, labels: np.ndarray) -> float:
        """
        Accuracy of cluster assignments against true labels, up to label permutation.

        Clusters are matched to labels with the Hungarian algorithm on the
        contingency table.
        """
        assignments = np.asarray(assignments).ravel()
        labels = np.asarray(labels).ravel()
        if assignments.size == 0:
            return 0.0

        _, cluster_ids = np.unique(assignments, return_inverse=True)
        _, label_ids = np.unique(labels, return_inverse=True)

        contingency = np.zeros((cluster_ids.max() + 1, label_ids.max() + 1), dtype=np.int64)
        np.add.at(contingency, (cluster_ids, label_ids), 1)

        rows, cols = linear_sum_assignment(-contingency)
        return float(contingency[rows, cols].sum() / assignments.size)
