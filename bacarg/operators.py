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
Metropolis-Hastings proposals that change the conversions of a graph.
"""
from __future__ import annotations

import dataclasses
import logging
import math
from typing import Union

from bacarg import core
from bacarg import events
from bacarg import exceptions
from bacarg import graph as graph_module
from bacarg import likelihood
from bacarg import populations

logger = logging.getLogger(__name__)

NULL = core.NULL


@dataclasses.dataclass(frozen=True)
class Proposal:
    """
    The outcome of a single call to a proposal operator. A rejected proposal
    has a log Hastings ratio of ``-inf`` and is guaranteed not to have
    modified the graph.
    """

    move: str
    log_hastings_ratio: float
    rejection_reason: Union[str, None] = None

    @classmethod
    def applied(cls, move, log_hastings_ratio):
        return cls(move=move, log_hastings_ratio=log_hastings_ratio)

    @classmethod
    def rejected(cls, move, reason):
        logger.debug("Rejected %s proposal: %s", move, reason)
        return cls(move=move, log_hastings_ratio=-math.inf, rejection_reason=reason)

    @property
    def is_rejected(self):
        return self.rejection_reason is not None


@dataclasses.dataclass(frozen=True)
class Attachment:
    node1: int
    height1: float
    node2: int
    height2: float


class ConversionCreationSampler:
    """
    Draws the affected region and the attachment points of new conversions,
    and evaluates the probability of those draws. Regions are drawn from the
    same start and end site distribution as the :class:`.ACGCoalescent`
    prior, departure points uniformly over the clonal frame, and arrival
    points by simulating the coalescence of the free lineage with the
    clonal frame.

    :param population: The population size function used to simulate
        arrival times.
    :param float delta: The mean conversion tract length.
    """

    def __init__(self, population, delta):
        if not isinstance(population, populations.PopulationSizeFunction):
            raise exceptions.ConfigurationError(
                "Population model must be a PopulationSizeFunction"
            )
        if delta is None or delta < 1:
            raise exceptions.ConfigurationError("delta must be >= 1")
        self.population = population
        self.delta = float(delta)

    def draw_affected_region(self, graph, rng):
        """
        Returns a ``(locus_name, start_site, end_site)`` tuple.
        """
        delta = self.delta
        u = rng.next_double() * (
            graph.num_loci * delta + graph.get_total_sequence_length()
        )
        loci = graph.loci
        for locus in loci:
            if u < delta + 1:
                start = 0
                break
            if u < delta + locus.site_count:
                start = int(math.floor(u - delta))
                break
            u -= delta + locus.site_count
        else:
            # Only reachable through floating point round-off at the very top.
            locus = loci[-1]
            start = locus.site_count - 1
        if delta > 1:
            v = rng.next_double()
            length = int(math.floor(math.log(1 - v) / math.log(1 - 1 / delta)))
        else:
            length = 0
        end = min(start + length, locus.site_count - 1)
        return locus.name, start, end

    def log_affected_region_prob(self, graph, conv):
        return likelihood.log_start_site_prob(
            graph, conv, self.delta
        ) + likelihood.log_end_site_prob(graph, conv, self.delta)

    def attach_edge(self, graph, rng) -> Union[Attachment, None]:
        """
        Draws the departure and arrival points of a new conversion on the
        current clonal frame. Returns None if the free lineage never
        coalesces, which can happen in a shrinking population.
        """
        cf_length = graph.get_clonal_frame_length()
        u = rng.next_double() * cf_length
        node1 = NULL
        for v in range(graph.num_nodes):
            if graph.is_root(v):
                continue
            length = graph.branch_length(v)
            if u < length:
                node1 = v
                break
            u -= length
        if node1 == NULL:
            # Round-off at the top of the last branch.
            node1 = max(
                (v for v in range(graph.num_nodes) if not graph.is_root(v)),
                key=graph.branch_length,
            )
            u = 0.0
        height1 = graph.height(node1) + u

        cf_events = graph.get_cf_events()
        j = events.find_interval(cf_events, height1)
        t = height1
        while True:
            k = cf_events[j].lineage_count
            rate_time = -math.log(1 - rng.next_double()) / k
            t_new = self.population.inverse_intensity(
                self.population.intensity(t) + rate_time
            )
            if j + 1 < len(cf_events):
                upper = cf_events[j + 1].height
            else:
                upper = math.inf
            if t_new < upper or math.isinf(upper):
                height2 = t_new
                break
            t = upper
            j += 1
        if math.isinf(height2):
            return None
        lineages = graph.lineages_at(height2)
        node2 = lineages[rng.next_int(len(lineages))]
        return Attachment(node1=node1, height1=height1, node2=node2, height2=height2)

    def log_edge_attachment_prob(self, graph, height1, height2):
        """
        Returns the log density of drawing a departure at ``height1`` and an
        arrival at ``height2`` on a particular pair of branches of the
        current clonal frame.
        """
        return likelihood.log_edge_density(
            self.population,
            graph.get_cf_events(),
            graph.get_clonal_frame_length(),
            height1,
            height2,
        )


def _attached_above(graph, node, height, exclude=None):
    for conv in graph.get_conversions():
        if conv is exclude:
            continue
        if (conv.node1 == node and conv.height1 > height) or (
            conv.node2 == node and conv.height2 > height
        ):
            return True
    return False


def _attached_at(graph, node, height, exclude=None):
    # An endpoint at exactly the graft height could not be placed on either
    # of the two branches that the graft creates.
    for conv in graph.get_conversions():
        if conv is exclude:
            continue
        if (conv.node1 == node and conv.height1 == height) or (
            conv.node2 == node and conv.height2 == height
        ):
            return True
    return False


class ClonalFrameConversionSwap:
    """
    A reversible pair of moves exchanging a clonal frame edge with a
    conversion edge. Deletion takes a visible conversion and makes its
    path the clonal frame path of ``node1``, with the old clonal frame path
    becoming a new conversion; creation is the exact inverse.

    Every rejection is decided before the graph is modified, so a rejected
    :class:`.Proposal` always leaves the graph untouched. After an applied
    proposal the caller decides whether to keep the new state, restoring a
    copy taken beforehand if not.

    :param sampler: The :class:`.ConversionCreationSampler` used to draw new
        conversions and to evaluate reverse-move probabilities.
    """

    def __init__(self, sampler):
        self.sampler = sampler

    def propose(self, graph, rng) -> Proposal:
        if rng.next_boolean():
            return self.delete_conversion(graph, rng)
        return self.create_conversion(graph, rng)

    def delete_conversion(self, graph, rng) -> Proposal:
        conversions = graph.get_conversions()
        count = len(conversions)
        if count == 0:
            return Proposal.rejected("delete", "no conversions to delete")
        conv = conversions[rng.next_int(count)]
        if conv.is_invisible:
            return Proposal.rejected("delete", "conversion is invisible")
        node1 = conv.node1
        height1 = conv.height1
        if _attached_above(graph, node1, height1, exclude=conv):
            return Proposal.rejected(
                "delete", f"conversions attach to node {node1} above {height1}"
            )
        if _attached_at(graph, conv.node2, conv.height2, exclude=conv):
            return Proposal.rejected(
                "delete", f"conversions attach to node {conv.node2} at {conv.height2}"
            )

        parent_height = graph.height(graph.parent(node1))
        arrival_height = conv.height2
        parent, _ = graph.detach_and_promote_sibling(node1)
        # Detaching re-points an arrival on the parent's branch to the
        # sibling, which now holds that branch.
        target = conv.node2
        graph.graft(parent, target, arrival_height)
        graph.delete_conversion(conv)

        ret = math.log(count)
        ret += self.sampler.log_affected_region_prob(graph, conv)
        ret += self.sampler.log_edge_attachment_prob(graph, height1, parent_height)
        logger.debug(
            "Deleted conversion %s; parent %d moved from %f to %f",
            conv.astuple(),
            parent,
            parent_height,
            arrival_height,
        )
        return Proposal.applied("delete", ret)

    def create_conversion(self, graph, rng) -> Proposal:
        locus, start, end = self.sampler.draw_affected_region(graph, rng)
        attachment = self.sampler.attach_edge(graph, rng)
        if attachment is None:
            return Proposal.rejected("create", "free lineage never coalesces")
        node1 = attachment.node1
        height1 = attachment.height1
        height2 = attachment.height2
        if attachment.node2 == node1:
            return Proposal.rejected("create", "conversion would be invisible")
        if _attached_above(graph, node1, height1):
            return Proposal.rejected(
                "create", f"conversions attach to node {node1} above {height1}"
            )
        # When node2 is the parent of node1 its endpoints are moved to the
        # sibling before grafting, so checking node2 covers both cases.
        if _attached_at(graph, attachment.node2, height2):
            return Proposal.rejected(
                "create", f"conversions attach to node {attachment.node2} at {height2}"
            )

        conv = graph_module.Conversion(
            locus=locus, start_site=start, end_site=end, node1=node1, height1=height1
        )
        ret = -self.sampler.log_affected_region_prob(graph, conv)
        ret -= self.sampler.log_edge_attachment_prob(graph, height1, height2)

        parent_height = graph.height(graph.parent(node1))
        parent, sibling = graph.detach_and_promote_sibling(node1)
        target = sibling if attachment.node2 == parent else attachment.node2
        graph.graft(parent, target, height2)
        # The old clonal frame path of node1 joins the sibling lineage at the
        # old parent height. If the parent was grafted onto the sibling below
        # that height, the sibling lineage there is the parent's branch.
        if target == sibling and height2 < parent_height:
            conv.node2 = parent
        else:
            conv.node2 = sibling
        conv.height2 = parent_height
        graph.add_conversion(conv)

        ret -= math.log(graph.get_total_conversion_count())
        logger.debug(
            "Created conversion %s; parent %d moved from %f to %f",
            conv.astuple(),
            parent,
            parent_height,
            height2,
        )
        return Proposal.applied("create", ret)
