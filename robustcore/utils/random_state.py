"""Random source handling shared by the engines."""

import numpy as np
from typing import Optional, Union

from robustcore.config import is_test_mode

TEST_MODE_SEED = 0

RandomLike = Optional[Union[int, np.random.Generator, np.random.SeedSequence]]


def make_rng(rng: RandomLike = None) -> np.random.Generator:
    """
    Resolve a random source.

    Generators are passed through untouched so callers can thread one
    through several calls. Seeds build a fresh generator. ``None`` uses
    a fixed seed in test mode and OS entropy otherwise.
    """
    if isinstance(rng, np.random.Generator):
        return rng
    if rng is None:
        return np.random.default_rng(TEST_MODE_SEED if is_test_mode() else None)
    return np.random.default_rng(rng)


def snapshot_seed(rng: np.random.Generator) -> int:
    """Draw a seed that parallel workers can share to rebuild identical state."""
    return int(rng.integers(0, 2**32 - 1))
