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
Utilities for building conversion graphs in tests.
"""
import numpy as np

import bacarg
from bacarg import operators


class ScriptedRandomSource:
    """
    A stand-in for :class:`bacarg.RandomSource` returning fixed sequences of
    draws, so that tests can steer operators down a particular path.
    """

    def __init__(self, booleans=(), ints=(), doubles=()):
        self.booleans = list(booleans)
        self.ints = list(ints)
        self.doubles = list(doubles)

    def next_boolean(self):
        return self.booleans.pop(0)

    def next_int(self, n):
        value = self.ints.pop(0)
        assert 0 <= value < n
        return value

    def next_double(self):
        return self.doubles.pop(0)


def two_leaf_graph(site_count=10000, root_height=1.0, locus="locus"):
    """
    Returns the graph (0:h,1:h)2 with no conversions.
    """
    graph = bacarg.ConversionGraph([bacarg.Locus(locus, site_count)])
    a = graph.add_node(0)
    b = graph.add_node(0)
    root = graph.add_node(root_height)
    graph.add_child(root, a)
    graph.add_child(root, b)
    graph.set_root(root)
    return graph


def balanced_four_graph(loci=None):
    """
    Returns the graph ((0,1)4:0.5,(2,3)5:0.3)6:1.0 with no conversions.
    """
    if loci is None:
        loci = [bacarg.Locus("locus", 1000)]
    graph = bacarg.ConversionGraph(loci)
    for _ in range(4):
        graph.add_node(0)
    graph.add_node(0.5)
    graph.add_node(0.3)
    graph.add_node(1.0)
    for parent, child in [(4, 0), (4, 1), (5, 2), (5, 3), (6, 4), (6, 5)]:
        graph.add_child(parent, child)
    graph.set_root(6)
    return graph


def random_graph(num_leaves, seed, loci=None, population_size=1.0):
    """
    Returns a clonal frame simulated under the Kingman coalescent with no
    conversions. Leaves are labelled ``t0``, ``t1``, ...
    """
    if loci is None:
        loci = [bacarg.Locus("locus", 1000)]
    rng = np.random.default_rng(seed)
    graph = bacarg.ConversionGraph(loci)
    lineages = [graph.add_node(0, label=f"t{j}") for j in range(num_leaves)]
    t = 0
    while len(lineages) > 1:
        k = len(lineages)
        t += rng.exponential(population_size / (k * (k - 1) / 2))
        a, b = rng.choice(k, size=2, replace=False)
        u = graph.add_node(t)
        graph.add_child(u, lineages[a])
        graph.add_child(u, lineages[b])
        lineages = [v for j, v in enumerate(lineages) if j not in (a, b)] + [u]
    graph.set_root(lineages[0])
    return graph


def add_random_conversions(graph, num_conversions, seed, delta=50.0):
    """
    Adds the specified number of conversions drawn from the conditional
    coalescent on the clonal frame, without changing the clonal frame.
    """
    rng = bacarg.RandomSource(seed)
    sampler = operators.ConversionCreationSampler(
        bacarg.ConstantPopulation(1.0), delta
    )
    added = []
    while len(added) < num_conversions:
        locus, start, end = sampler.draw_affected_region(graph, rng)
        attachment = sampler.attach_edge(graph, rng)
        conv = bacarg.Conversion(
            locus=locus,
            start_site=start,
            end_site=end,
            node1=attachment.node1,
            height1=attachment.height1,
            node2=attachment.node2,
            height2=attachment.height2,
        )
        graph.add_conversion(conv)
        added.append(conv)
    return added
