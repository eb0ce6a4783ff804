#
# Copyright (C) 2024 The bacarg developers
#
# This file is part of bacarg.
#
# bacarg is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# bacarg is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with bacarg.  If not, see <http://www.gnu.org/licenses/>.
#
"""
Core functions and classes used throughout bacarg.
"""
from __future__ import annotations

import numbers
import os
import random
from typing import Any
from typing import Dict

import numpy as np

__version__ = "0.1.0"

# Null node reference, following the tskit convention.
NULL = -1


# Some machinery here for generating default random seeds. We need a map
# indexed by process ID here because we cannot use a global variable
# to store the state across multiple processes. Copy-on-write semantics
# for child processes means that they inherit the state of the parent
# process, so if we just keep a global variable without indexing by
# PID, child processes will share the same random generator as the
# parent.

_seed_rng_map: Dict[int, random.Random] = {}


def get_random_seed() -> int:
    global _seed_rng_map
    pid = os.getpid()
    if pid not in _seed_rng_map:
        # If we don't provide a seed to Random(), Python will seed either
        # from a system source of randomness (i.e., /dev/urandom) or the
        # current time if this is not available. Thus, our seed rng should
        # be unique, even across different processes.
        _seed_rng_map[pid] = random.Random()
    return _seed_rng_map[pid].randint(1, 2 ** 32 - 1)


def isinteger(value: Any) -> bool:
    """
    Returns True if the specified value can be converted losslessly to an
    integer.
    """
    if isinstance(value, numbers.Number):
        # Mypy doesn't realise we've done an isinstance here.
        return int(value) == float(value)  # type: ignore
    return False


class RandomSource:
    """
    The source of randomness for a single chain. Every operator and sampler
    takes one of these explicitly, so that a chain is reproducible from its
    seed and tests can substitute a fixed sequence of draws.

    :param int random_seed: The seed for the underlying generator. If None,
        a seed is chosen randomly.
    """

    def __init__(self, random_seed=None):
        if random_seed is None:
            random_seed = get_random_seed()
        if not isinteger(random_seed) or not 0 < random_seed < 2 ** 32:
            raise ValueError("Random seeds must be integers between 0 and 2**32")
        self.random_seed = int(random_seed)
        self._generator = np.random.default_rng(self.random_seed)

    def next_boolean(self) -> bool:
        """
        Returns True or False with equal probability.
        """
        return bool(self._generator.integers(2) == 1)

    def next_int(self, n: int) -> int:
        """
        Returns an integer uniformly distributed in ``[0, n)``.
        """
        if n <= 0:
            raise ValueError("Upper bound must be positive")
        return int(self._generator.integers(n))

    def next_double(self) -> float:
        """
        Returns a float uniformly distributed in ``[0, 1)``.
        """
        return float(self._generator.random())

    def __repr__(self):
        return f"RandomSource(random_seed={self.random_seed})"
