"""
Seeding and parallel execution of independent resampling draws.

Each draw gets its own child of a numpy SeedSequence, so a fixed seed gives
the same draws regardless of the number of workers.
"""

import logging
from typing import Callable, List, Optional, TypeVar, Union

import numpy as np
from joblib import Parallel, delayed

logger = logging.getLogger(__name__)

T = TypeVar("T")

RandomState = Optional[Union[int, np.random.SeedSequence]]


def spawn_seeds(random_state: RandomState, n_draws: int) -> List[np.random.SeedSequence]:
    """One independent seed sequence per draw."""
    if isinstance(random_state, np.random.SeedSequence):
        root = random_state
    else:
        root = np.random.SeedSequence(random_state)
    return root.spawn(n_draws)


def run_draws(
    draw: Callable[[np.random.Generator], T],
    seeds: List[np.random.SeedSequence],
    n_jobs: int = 1,
) -> List[T]:
    """
    Run ``draw`` once per seed and return the results in seed order.

    Parameters
    ----------
    draw : callable
        Function of a numpy Generator returning the result of one draw.
        It must not mutate shared state.
    seeds : list of SeedSequence
        One seed per draw.
    n_jobs : int
        Number of worker threads. 1 runs sequentially, -1 uses all cores.

    Returns
    -------
    list
        Draw results, in the same order as ``seeds``.
    """
    if n_jobs == 1:
        return [draw(np.random.default_rng(seed)) for seed in seeds]

    # LAPACK calls release the GIL; threads share the data matrices
    return Parallel(n_jobs=n_jobs, prefer="threads")(
        delayed(draw)(np.random.default_rng(seed)) for seed in seeds
    )
