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
Population size functions used by the coalescent prior and by the
arrival-time sampler of the conversion operators.
"""
from __future__ import annotations

import math

import numpy as np

from bacarg import exceptions


class PopulationSizeFunction:
    """
    Superclass of population size functions :math:`N(t)`, where time is
    measured backwards from the present. Subclasses provide the intensity
    :math:`\\Lambda(t) = \\int_0^t N(u)^{-1} du`, its inverse and the size
    itself.
    """

    def pop_size(self, t):
        raise NotImplementedError()

    def intensity(self, t):
        raise NotImplementedError()

    def inverse_intensity(self, x):
        raise NotImplementedError()

    def integral(self, t0, t1):
        """
        Returns :math:`\\int_{t_0}^{t_1} N(t)^{-1} dt`.
        """
        return self.intensity(t1) - self.intensity(t0)

    def asdict(self):
        raise NotImplementedError()


class ConstantPopulation(PopulationSizeFunction):
    """
    A population of constant size.

    :param float size: The population size. Must be positive.
    """

    def __init__(self, size=1.0):
        if size is None:
            raise exceptions.ConfigurationError("Population size must be specified")
        size = float(size)
        if not size > 0:
            raise exceptions.ConfigurationError("Population size must be > 0")
        self.size = size

    def pop_size(self, t):
        return self.size

    def intensity(self, t):
        return t / self.size

    def inverse_intensity(self, x):
        return x * self.size

    def integral(self, t0, t1):
        return (t1 - t0) / self.size

    def asdict(self):
        return {"size": self.size}

    def __repr__(self):
        return f"ConstantPopulation(size={self.size})"


class ExponentialGrowth(PopulationSizeFunction):
    """
    A population that has been growing (or shrinking) exponentially, so that
    looking backwards in time :math:`N(t) = N_0 e^{-g t}`. This is the same
    convention as the ``initial_size`` and ``growth_rate`` of an msprime
    population.

    :param float initial_size: The population size at time zero.
    :param float growth_rate: The forwards-time exponential growth rate.
    """

    def __init__(self, initial_size, growth_rate=0.0):
        if initial_size is None:
            raise exceptions.ConfigurationError("Initial size must be specified")
        initial_size = float(initial_size)
        if not initial_size > 0:
            raise exceptions.ConfigurationError("Initial size must be > 0")
        self.initial_size = initial_size
        self.growth_rate = float(growth_rate)

    def pop_size(self, t):
        return self.initial_size * math.exp(-self.growth_rate * t)

    def intensity(self, t):
        g = self.growth_rate
        if g == 0:
            return t / self.initial_size
        return math.expm1(g * t) / (g * self.initial_size)

    def inverse_intensity(self, x):
        g = self.growth_rate
        if g == 0:
            return x * self.initial_size
        y = g * self.initial_size * x
        if y <= -1:
            # A shrinking population accumulates bounded intensity, so
            # coalescence may never happen.
            return math.inf
        return math.log1p(y) / g

    def asdict(self):
        return {"initial_size": self.initial_size, "growth_rate": self.growth_rate}

    def __repr__(self):
        return (
            f"ExponentialGrowth(initial_size={self.initial_size}, "
            f"growth_rate={self.growth_rate})"
        )


class PiecewiseConstantPopulation(PopulationSizeFunction):
    """
    A population whose size is constant between a set of change times. The
    last size applies from the last change time to infinity.

    :param list time: A list of :math:`n` strictly increasing change times,
        starting at 0.
    :param list size: A list of :math:`n` positive sizes, where ``size[j]``
        applies from ``time[j]`` until ``time[j + 1]``.
    """

    def __init__(self, *, time, size):
        self._time = np.array(time, dtype=float)
        self._time.flags.writeable = False
        self._size = np.array(size, dtype=float)
        self._size.flags.writeable = False
        if len(self._time) < 1:
            raise exceptions.ConfigurationError("Must have at least one epoch")
        if len(self._size) != len(self._time):
            raise exceptions.ConfigurationError(
                "Size array must have the same number of entries as the time array"
            )
        if self._time[0] != 0:
            raise exceptions.ConfigurationError("First time must be zero")
        span = np.diff(self._time)
        if np.any(span <= 0):
            bad = np.where(span <= 0)[0] + 1
            raise exceptions.ConfigurationError(
                f"Time values not strictly increasing at indexes {bad}"
            )
        if np.any(~(self._size > 0)):
            bad = np.where(~(self._size > 0))[0]
            raise exceptions.ConfigurationError(
                f"Size values not positive at indexes {bad}"
            )
        # Intensity accumulated up to the start of each epoch.
        self._cumulative = np.insert(np.cumsum(span / self._size[:-1]), 0, 0)
        self._cumulative.flags.writeable = False

    @property
    def time(self):
        return self._time

    @property
    def size(self):
        return self._size

    @property
    def num_epochs(self):
        return len(self._size)

    def _epoch(self, t):
        if t < 0:
            raise ValueError(f"Cannot have negative time {t}")
        return int(np.searchsorted(self._time, t, side="right")) - 1

    def pop_size(self, t):
        return float(self._size[self._epoch(t)])

    def intensity(self, t):
        j = self._epoch(t)
        return float(self._cumulative[j] + (t - self._time[j]) / self._size[j])

    def inverse_intensity(self, x):
        if x < 0:
            raise ValueError(f"Cannot have negative intensity {x}")
        j = int(np.searchsorted(self._cumulative, x, side="right")) - 1
        return float(self._time[j] + (x - self._cumulative[j]) * self._size[j])

    def asdict(self):
        return {"time": self._time, "size": self._size}

    def __repr__(self):
        return (
            f"PiecewiseConstantPopulation(time={repr(self._time)}, "
            f"size={repr(self._size)})"
        )
