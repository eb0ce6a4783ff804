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
Module responsible for computing likelihoods.
"""
import collections
import logging
import math

import numpy as np

from bacarg import events
from bacarg import exceptions
from bacarg import marginal
from bacarg import populations
from bacarg import substitutions

logger = logging.getLogger(__name__)


def log_start_site_prob(graph, conv, delta):
    """
    Returns the log probability that a conversion tract begins at the start
    site of ``conv``. Tracts are initiated uniformly over the
    ``num_loci * delta + total_sequence_length`` possible starting points,
    where the ``delta + 1`` points at or before the first site of a locus
    all begin the tract at site zero.
    """
    denominator = graph.num_loci * delta + graph.get_total_sequence_length()
    if conv.start_site == 0:
        return math.log((delta + 1) / denominator)
    return math.log(1 / denominator)


def log_end_site_prob(graph, conv, delta):
    """
    Returns the log probability of the end site of ``conv`` given its start
    site. Tract lengths are geometric with mean ``delta``, truncated at the
    last site of the locus, which receives all of the remaining mass.
    """
    site_count = graph.locus(conv.locus).site_count
    q = 1 - 1 / delta
    prob_end = q ** (conv.end_site - conv.start_site) / delta
    if conv.end_site == site_count - 1:
        prob_end += q ** (site_count - conv.start_site)
    if prob_end <= 0:
        return -math.inf
    return math.log(prob_end)


def log_edge_density(population, cf_events, cf_length, height1, height2):
    """
    Returns the log density of a conversion edge departing the clonal frame
    at ``height1`` and coalescing back into it at ``height2``: a uniform
    departure point on the clonal frame, followed by the first coalescence
    of the free lineage with any clonal frame lineage.
    """
    ret = -math.log(cf_length)
    ret -= events.integrate_lineages(population, cf_events, height1, height2)
    ret -= math.log(population.pop_size(height2))
    return ret


class ACGCoalescent:
    """
    The approximation to the coalescent with gene conversion in which
    conversion edges coalesce independently with the clonal frame.

    :param population: The population size function, an instance of
        :class:`.PopulationSizeFunction`.
    :param float rho: The per-site conversion rate. Must be non-negative.
    :param float delta: The mean conversion tract length. Must be >= 1.
    :param int lower_bound: The smallest conversion count with non-zero
        density.
    :param int upper_bound: The largest conversion count with non-zero
        density. If None, the count is unbounded.
    """

    def __init__(self, population, rho, delta, lower_bound=0, upper_bound=None):
        if population is None:
            raise exceptions.ConfigurationError("A population model is required")
        if not isinstance(population, populations.PopulationSizeFunction):
            raise exceptions.ConfigurationError(
                "Population model must be a PopulationSizeFunction"
            )
        if rho is None or rho < 0:
            raise exceptions.ConfigurationError("rho must be non-negative")
        if delta is None or delta < 1:
            raise exceptions.ConfigurationError("delta must be >= 1")
        if lower_bound < 0:
            raise exceptions.ConfigurationError("Lower bound must be non-negative")
        if upper_bound is not None and upper_bound < lower_bound:
            raise exceptions.ConfigurationError(
                "Upper bound on conversion count must be >= the lower bound"
            )
        self.population = population
        self.rho = float(rho)
        self.delta = float(delta)
        self.lower_bound = lower_bound
        self.upper_bound = upper_bound

    def asdict(self):
        return {
            "population": self.population,
            "rho": self.rho,
            "delta": self.delta,
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
        }

    def log_density(self, graph):
        """
        Returns the log density of the specified graph. The density is
        recomputed from the current state of the graph on every call.
        """
        count = graph.get_total_conversion_count()
        if count < self.lower_bound:
            return -math.inf
        if self.upper_bound is not None and count > self.upper_bound:
            return -math.inf

        cf_events = graph.get_cf_events()
        ret = self._log_clonal_frame_density(cf_events)

        if self.rho > 0:
            mean = (
                self.rho
                * graph.get_clonal_frame_length()
                * (graph.get_total_sequence_length() + graph.num_loci * self.delta)
            )
            ret += -mean + count * math.log(mean)
        elif count > 0:
            return -math.inf

        cf_length = graph.get_clonal_frame_length()
        for conv in graph.get_conversions():
            ret += self._log_conversion_density(graph, conv, cf_events, cf_length)
        return ret

    def log_clonal_frame_density(self, graph):
        """
        Returns the log density of the clonal frame under the coalescent.
        """
        return self._log_clonal_frame_density(graph.get_cf_events())

    def log_conversion_density(self, graph, conv):
        """
        Returns the log density of a single conversion conditional on the
        clonal frame.
        """
        return self._log_conversion_density(
            graph, conv, graph.get_cf_events(), graph.get_clonal_frame_length()
        )

    def _log_clonal_frame_density(self, cf_events):
        ret = 0.0
        for e1, e2 in zip(cf_events[:-1], cf_events[1:]):
            k = e1.lineage_count
            ret += -0.5 * k * (k - 1) * self.population.integral(e1.height, e2.height)
            if e2.is_coalescence:
                ret -= math.log(self.population.pop_size(e2.height))
        return ret

    def _log_conversion_density(self, graph, conv, cf_events, cf_length):
        ret = log_edge_density(
            self.population, cf_events, cf_length, conv.height1, conv.height2
        )
        ret += log_start_site_prob(graph, conv, self.delta)
        ret += log_end_site_prob(graph, conv, self.delta)
        return ret


class ACGLikelihood:
    """
    The likelihood of a set of alignments given a conversion graph. Sites are
    grouped by their set of active conversions, and each group is evaluated
    by Felsenstein peeling on the corresponding marginal tree.

    :param dict alignments: A mapping from locus name to the
        :class:`.Alignment` for that locus.
    :param model: The :class:`.SubstitutionModel`. Defaults to
        :class:`.JC69`.
    :param float mutation_rate: The expected number of substitutions per
        site per unit of height.
    """

    def __init__(self, alignments, model=None, mutation_rate=1.0):
        if len(alignments) == 0:
            raise exceptions.ConfigurationError("At least one alignment is required")
        if model is None:
            model = substitutions.JC69()
        if not mutation_rate > 0:
            raise exceptions.ConfigurationError("Mutation rate must be > 0")
        self.alignments = dict(alignments)
        self.model = model
        self.mutation_rate = float(mutation_rate)

    def _rows(self, graph, locus, alignment):
        if alignment.site_count != locus.site_count:
            raise exceptions.ConfigurationError(
                f"Alignment for locus {locus.name} has {alignment.site_count} "
                f"sites but the locus has {locus.site_count}"
            )
        labels = [graph.label(u) for u in graph.leaves()]
        missing = set(labels) - set(alignment.taxa)
        if len(missing) > 0:
            raise exceptions.ConfigurationError(
                f"No sequence for taxa {sorted(missing)} in locus {locus.name}"
            )
        return {label: alignment.index(label) for label in labels}

    def _log_tree_likelihood(self, tree, rows, patterns, counts):
        num_patterns = patterns.shape[1]
        num_states = self.model.num_states
        partials = [None for _ in range(tree.num_nodes)]
        log_scale = np.zeros(num_patterns)
        for node in tree.nodes:
            if node.is_leaf:
                states = patterns[rows[node.label]]
                known = np.where(states >= 0)[0]
                partial = np.ones((num_patterns, num_states))
                partial[known] = 0
                partial[known, states[known]] = 1
            else:
                partial = np.ones((num_patterns, num_states))
                for child in node.children:
                    P = self.model.transition_probabilities(
                        self.mutation_rate * tree.branch_length(child)
                    )
                    partial *= partials[child] @ P.T
                    partials[child] = None
                scale = partial.max(axis=1)
                if np.any(scale <= 0):
                    return -math.inf
                partial /= scale[:, np.newaxis]
                log_scale += np.log(scale)
            partials[node.id] = partial
        site_likelihood = partials[tree.root] @ self.model.frequencies
        return float(np.sum(counts * (np.log(site_likelihood) + log_scale)))

    def log_likelihood(self, graph):
        """
        Returns the log probability of the alignments given the specified
        graph.
        """
        ret = 0.0
        for locus in graph.loci:
            if locus.name not in self.alignments:
                raise exceptions.ConfigurationError(
                    f"No alignment for locus {locus.name}"
                )
            alignment = self.alignments[locus.name]
            rows = self._rows(graph, locus, alignment)
            sites = collections.defaultdict(list)
            for region in graph.get_regions(locus):
                sites[region.active].append(np.arange(region.left, region.right))
            for active, site_lists in sites.items():
                tree = marginal.marginal_tree(graph, active)
                columns = alignment.states[:, np.concatenate(site_lists)]
                patterns, counts = np.unique(columns, axis=1, return_counts=True)
                logger.debug(
                    "Locus %s: %d sites with %d patterns under %d conversions",
                    locus.name,
                    columns.shape[1],
                    patterns.shape[1],
                    len(active),
                )
                ret += self._log_tree_likelihood(tree, rows, patterns, counts)
        return ret
