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
Nucleotide substitution models used by the sequence likelihood.
"""
import inspect

import numpy as np

from bacarg import exceptions

NUCLEOTIDES = ["A", "C", "G", "T"]


def safe_asdict(self):
    # Subclasses *must* have an instance variable with the same name as
    # each constructor parameter for provenance round-tripping to work.
    return {
        key: getattr(self, key)
        for key in inspect.signature(self.__init__).parameters.keys()
        if hasattr(self, key)
    }


def _matrix_exponential(A):
    """
    Returns the matrix exponential of A.
    https://en.wikipedia.org/wiki/Matrix_exponential
    Note: this is not a general purpose method; the rate matrices here are
    diagonalisable because the models are time reversible.
    """
    d, Y = np.linalg.eig(A)
    Yinv = np.linalg.pinv(Y)
    D = np.diag(np.exp(d))
    B = np.matmul(Y, np.matmul(D, Yinv))
    return np.real_if_close(B, tol=1000)


def _check_frequencies(equilibrium_frequencies):
    if equilibrium_frequencies is None:
        return np.full(4, 0.25)
    freqs = np.array(equilibrium_frequencies, dtype="float64")
    if freqs.shape != (4,):
        raise exceptions.ConfigurationError("Must specify four equilibrium frequencies")
    if np.any(freqs <= 0) or not np.isclose(np.sum(freqs), 1):
        raise exceptions.ConfigurationError(
            "Equilibrium frequencies must be positive and sum to one"
        )
    return freqs


class SubstitutionModel:
    """
    Superclass of time reversible nucleotide substitution models. The rate
    matrix is scaled so that the expected number of substitutions per unit
    time at equilibrium is one.

    :param relative_rates: The symmetric exchangeability matrix.
    :param equilibrium_frequencies: The stationary distribution of the
        model, in ``A, C, G, T`` order.
    """

    asdict = safe_asdict

    def __init__(self, relative_rates, equilibrium_frequencies):
        self.alleles = list(NUCLEOTIDES)
        self.frequencies = _check_frequencies(equilibrium_frequencies)
        exchange = np.array(relative_rates, dtype="float64")
        Q = exchange * self.frequencies
        np.fill_diagonal(Q, 0.0)
        np.fill_diagonal(Q, -Q.sum(axis=1))
        scale = -np.sum(self.frequencies * np.diag(Q))
        if not scale > 0:
            raise exceptions.ConfigurationError("Substitution rates cannot all be zero")
        self.rate_matrix = Q / scale

    @property
    def num_states(self):
        return len(self.alleles)

    def transition_probabilities(self, t):
        """
        Returns the matrix of probabilities ``P[i, j]`` of being in state
        ``j`` after time ``t`` having started in state ``i``.
        """
        if t < 0:
            raise ValueError("Cannot have negative branch length")
        P = _matrix_exponential(self.rate_matrix * t)
        # Round-off from the eigendecomposition can leave tiny negatives.
        return np.clip(P, 0, 1)

    def __str__(self):
        s = f"Substitution model with alleles {self.alleles}\n"
        s += "  equilibrium frequencies: {}\n".format(
            " ".join(map(str, self.frequencies))
        )
        s += "  rate matrix:\n"
        for row in self.rate_matrix:
            s += "     {}\n".format(" ".join(map(str, row)))
        return s


class JC69(SubstitutionModel):
    """
    The Jukes-Cantor substitution model.
    """

    def __init__(self):
        super().__init__(np.ones((4, 4)), None)


class HKY(SubstitutionModel):
    """
    The Hasegawa, Kishino and Yano substitution model (Hasegawa et al. 1985).

    :param float kappa: The transition/transversion rate ratio.
    :param equilibrium_frequencies: The base frequencies.
    """

    def __init__(self, kappa=1.0, equilibrium_frequencies=None):
        if not kappa > 0:
            raise exceptions.ConfigurationError("kappa must be > 0")
        self.kappa = float(kappa)
        self.equilibrium_frequencies = equilibrium_frequencies
        exchange = np.full((4, 4), 1.0)
        # positions in the rate matrix for transitions
        transition_pos = ((0, 1, 2, 3), (2, 3, 0, 1))
        exchange[transition_pos] = kappa
        super().__init__(exchange, equilibrium_frequencies)


class GTR(SubstitutionModel):
    """
    The generalised time-reversible substitution model (Tavaré et al. 1986).

    :param relative_rates: The six exchangeabilities in the order
        ``A<->C, A<->G, A<->T, C<->G, C<->T, G<->T``.
    :param equilibrium_frequencies: The base frequencies.
    """

    def __init__(self, relative_rates, equilibrium_frequencies=None):
        if len(relative_rates) != 6:
            raise exceptions.ConfigurationError("GTR requires six relative rates")
        if any(rate < 0 for rate in relative_rates):
            raise exceptions.ConfigurationError("Relative rates must be non-negative")
        self.relative_rates = list(relative_rates)
        self.equilibrium_frequencies = equilibrium_frequencies
        exchange = np.zeros((4, 4))
        tri_upper = np.triu_indices_from(exchange, k=1)
        exchange[tri_upper] = relative_rates
        exchange += exchange.T
        super().__init__(exchange, equilibrium_frequencies)


def parse_model(spec):
    """
    Returns the substitution model named by the specified string. Accepts
    ``JC69``, ``HKY`` and ``HKY:kappa``.
    """
    name, _, arg = spec.partition(":")
    name = name.upper()
    if name in ("JC69", "JC"):
        return JC69()
    if name == "HKY":
        return HKY(kappa=float(arg)) if arg else HKY()
    raise exceptions.ConfigurationError(f"Unknown substitution model '{spec}'")
