"""Basic usage example for robustcore."""

import numpy as np
from robustcore.ransac import MSAC, Line2DModel
from robustcore.clustering import approximate_kmeans
from robustcore.utils.metrics import AccuracyMetrics


def main():
    """Fit a line among outliers, then cluster a few blobs."""
    rng = np.random.default_rng(42)

    # Noisy points on y = 2x + 1 plus uniform outliers
    x = rng.uniform(-5, 5, 700)
    inliers = np.column_stack([x, 2 * x + 1 + rng.normal(0, 0.01, 700)])
    outliers = np.column_stack([rng.uniform(-5, 5, 300), rng.uniform(-9, 11, 300)])
    points = np.vstack([inliers, outliers])

    print("Fitting line with MSAC...")
    result = MSAC(max_distance=0.1, recompute_from_inliers=True).fit(points, Line2DModel(), rng=0)

    if not result.found:
        print("Error: No line found")
        return

    slope, intercept = Line2DModel.slope_intercept(result.model)
    print(f"Line: y = {slope:.3f}x + {intercept:.3f} ({int(result.inliers.sum())} inliers)")

    # Three well separated blobs
    print("Clustering blobs...")
    centers = np.array([[0.0, 0.0], [10.0, 0.0], [0.0, 10.0]])
    features = np.vstack([c + rng.normal(0, 0.5, (200, 2)) for c in centers])
    labels = np.repeat(np.arange(3), 200)

    found_centers, assignments = approximate_kmeans(features, 3, num_trials=3, rng=0)
    accuracy = AccuracyMetrics.clustering_accuracy(assignments, labels)

    print(f"Centers:\n{np.round(found_centers, 2)}")
    print(f"Clustering accuracy: {accuracy:.3f}")


if __name__ == "__main__":
    main()
