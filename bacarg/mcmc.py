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
A minimal Metropolis-Hastings driver for conversion graph proposals.
"""
from __future__ import annotations

import collections
import dataclasses
import logging
import math

from bacarg import exceptions

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class MoveStatistics:
    proposed: int = 0
    rejected: int = 0
    accepted: int = 0

    @property
    def acceptance_rate(self):
        if self.proposed == 0:
            return math.nan
        return self.accepted / self.proposed


class MetropolisHastings:
    """
    Runs a single chain over conversion graphs. Each step copies the graph,
    asks the operator for a proposal and, if the proposal was applied but
    not accepted, restores the copy.

    :param graph: The initial :class:`.ConversionGraph`. It must have a
        finite posterior density.
    :param prior: The :class:`.ACGCoalescent` prior.
    :param operator: The proposal operator, for example
        :class:`.ClonalFrameConversionSwap`.
    :param rng: The :class:`.RandomSource` for this chain.
    :param likelihood: An optional :class:`.ACGLikelihood`. If None the
        chain samples from the prior.
    :param bool check_invariants: If True, check the graph invariants after
        every step. This is slow and intended for debugging.
    """

    def __init__(
        self, graph, prior, operator, rng, likelihood=None, check_invariants=False
    ):
        self.graph = graph
        self.prior = prior
        self.operator = operator
        self.rng = rng
        self.likelihood = likelihood
        self.check_invariants = check_invariants
        self.statistics = collections.defaultdict(MoveStatistics)
        self.num_steps = 0
        self.log_posterior = self.evaluate(graph)
        if not math.isfinite(self.log_posterior):
            raise exceptions.ConfigurationError(
                "Initial graph must have a finite posterior density"
            )

    def evaluate(self, graph):
        ret = self.prior.log_density(graph)
        if self.likelihood is not None and ret > -math.inf:
            ret += self.likelihood.log_likelihood(graph)
        return ret

    def step(self):
        """
        Performs one step of the chain and returns True if the proposed
        state was accepted.
        """
        self.num_steps += 1
        snapshot = self.graph.copy()
        proposal = self.operator.propose(self.graph, self.rng)
        stats = self.statistics[proposal.move]
        stats.proposed += 1
        if proposal.is_rejected:
            stats.rejected += 1
            return False
        new_log_posterior = self.evaluate(self.graph)
        log_alpha = new_log_posterior - self.log_posterior + proposal.log_hastings_ratio
        accept = log_alpha >= 0 or self.rng.next_double() < math.exp(log_alpha)
        if accept:
            stats.accepted += 1
            self.log_posterior = new_log_posterior
        else:
            self.graph = snapshot
        if self.check_invariants:
            self.graph.check_invariants()
        return accept

    def run(self, num_steps, sample_interval=1, callback=None):
        """
        Runs the chain for the specified number of steps. Every
        ``sample_interval`` steps, ``callback(step, chain)`` is called if
        specified.
        """
        for j in range(1, num_steps + 1):
            self.step()
            if j % sample_interval == 0:
                logger.info(
                    "step=%d log_posterior=%f conversions=%d",
                    self.num_steps,
                    self.log_posterior,
                    self.graph.get_total_conversion_count(),
                )
                if callback is not None:
                    callback(self.num_steps, self)
        for move, stats in sorted(self.statistics.items()):
            logger.info(
                "%s: proposed=%d rejected=%d accepted=%d",
                move,
                stats.proposed,
                stats.rejected,
                stats.accepted,
            )
