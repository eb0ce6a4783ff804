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
Regions of constant conversion ancestry and the marginal trees they imply.
"""
from __future__ import annotations

import collections
import dataclasses
import logging
from typing import FrozenSet
from typing import List
from typing import Union

import tskit

from bacarg import core
from bacarg import exceptions
from bacarg import provenance

logger = logging.getLogger(__name__)

NULL = core.NULL


@dataclasses.dataclass(frozen=True)
class Region:
    """
    A maximal interval ``[left, right)`` of sites on one locus over which the
    set of conversions covering every site is constant.
    """

    left: int
    right: int
    active: FrozenSet = frozenset()

    @property
    def span(self):
        return self.right - self.left

    @property
    def num_active(self):
        return len(self.active)


def regions(graph, locus) -> List[Region]:
    """
    Returns the regions partitioning ``[0, locus.site_count)``, in order.
    Region boundaries fall only on conversion start sites and one past
    conversion end sites.
    """
    conversions = graph.get_conversions(locus)
    breaks = {0, locus.site_count}
    for conv in conversions:
        breaks.add(conv.start_site)
        breaks.add(conv.end_site + 1)
    breaks = sorted(breaks)
    ret = []
    for left, right in zip(breaks[:-1], breaks[1:]):
        active = frozenset(
            conv
            for conv in conversions
            if conv.start_site <= left and right - 1 <= conv.end_site
        )
        ret.append(Region(left=left, right=right, active=active))
    return ret


@dataclasses.dataclass
class MarginalNode:
    """
    A node in a marginal tree. Each node corresponds either to a clonal frame
    node (``cf_node``) or to the arrival of an active conversion
    (``conversion``).
    """

    id: int  # noqa: A003
    height: float
    children: List[int] = dataclasses.field(default_factory=list)
    parent: int = NULL
    label: Union[str, None] = None
    cf_node: int = NULL
    conversion: object = None

    @property
    def is_leaf(self):
        return len(self.children) == 0


class MarginalTree:
    """
    A binary tree derived from a conversion graph for one set of active
    conversions. Node IDs are assigned in creation order, so children always
    have smaller IDs than their parents.
    """

    def __init__(self):
        self.nodes: List[MarginalNode] = []
        self.root = NULL

    def _add_node(self, height, children=(), **kwargs):
        node = MarginalNode(id=len(self.nodes), height=height, **kwargs)
        for child in children:
            node.children.append(child)
            self.nodes[child].parent = node.id
        self.nodes.append(node)
        return node.id

    @property
    def num_nodes(self):
        return len(self.nodes)

    def leaves(self):
        return [node.id for node in self.nodes if node.is_leaf]

    @property
    def num_leaves(self):
        return len(self.leaves())

    def branch_length(self, u):
        parent = self.nodes[u].parent
        if parent == NULL:
            return 0.0
        return self.nodes[parent].height - self.nodes[u].height

    def clades(self):
        """
        Returns the set of ``(leaf_labels, height)`` pairs for the internal
        nodes of this tree, which identifies the tree up to node numbering.
        """
        below = {}
        ret = set()
        for node in self.nodes:
            if node.is_leaf:
                below[node.id] = frozenset([node.label])
            else:
                below[node.id] = frozenset().union(*(below[v] for v in node.children))
                ret.add((below[node.id], node.height))
        return ret

    def newick(self, precision=None):
        """
        Returns a Newick representation of this tree with branch lengths.
        Leaves are labelled with their clonal frame labels.
        """

        def fmt(x):
            return repr(float(x)) if precision is None else f"{x:.{precision}f}"

        def write(u):
            node = self.nodes[u]
            if node.is_leaf:
                s = node.label
            else:
                s = "(" + ",".join(write(v) for v in node.children) + ")"
            if node.parent != NULL:
                s += ":" + fmt(self.branch_length(u))
            return s

        return write(self.root) + ";"


# Ordering of coincident events in the marginal tree sweep.
_SAMPLE = 0
_COALESCENCE = 1
_DEPARTURE = 2
_ARRIVAL = 3


def marginal_tree(graph, active) -> MarginalTree:
    """
    Returns the marginal tree for the specified set of active conversions.

    The clonal frame is swept from the present backwards. Each active
    conversion removes the ancestral material from the branch above its
    ``node1`` at ``height1`` and carries it to the branch above its ``node2``
    at ``height2``. A new marginal node is created wherever two lineages
    carrying material meet.
    """
    sweep = []
    for u in graph.postorder():
        if graph.is_leaf(u):
            sweep.append((graph.height(u), _SAMPLE, u, None))
        else:
            sweep.append((graph.height(u), _COALESCENCE, u, None))
    for j, conv in enumerate(sorted(active, key=lambda c: c.astuple())):
        sweep.append((conv.height1, _DEPARTURE, j, conv))
        sweep.append((conv.height2, _ARRIVAL, j, conv))
    sweep.sort(key=lambda x: x[:3])

    tree = MarginalTree()
    lineage = {}
    in_transit = {}

    def merge(a, b, height, **kwargs):
        if a is None:
            return b
        if b is None:
            return a
        return tree._add_node(height, children=(a, b), **kwargs)

    for height, kind, key, conv in sweep:
        if kind == _SAMPLE:
            lineage[key] = tree._add_node(height, label=graph.label(key), cf_node=key)
        elif kind == _COALESCENCE:
            a, b = graph.children(key)
            lineage[key] = merge(lineage[a], lineage[b], height, cf_node=key)
        elif kind == _DEPARTURE:
            in_transit[key] = lineage[conv.node1]
            lineage[conv.node1] = None
        else:
            incoming = in_transit.pop(key)
            lineage[conv.node2] = merge(
                lineage[conv.node2], incoming, height, conversion=conv
            )
    tree.root = lineage[graph.root]
    if tree.root is None or len(in_transit) > 0:
        raise exceptions.InvariantError("Marginal tree sweep lost ancestral material")
    return tree


def marginal_trees(graph, locus):
    """
    Returns an iterator over the ``(region, tree)`` pairs of the specified
    locus.
    """
    locus = graph.locus(locus)
    for region in regions(graph, locus):
        yield region, marginal_tree(graph, region.active)


def to_tree_sequence(graph, locus=None, record_provenance=True) -> tskit.TreeSequence:
    """
    Returns the marginal genealogies of the specified locus as a
    :class:`tskit.TreeSequence` with one unit of sequence length per site.
    The first nodes of the output have the same IDs as the clonal frame
    nodes, with leaves marked as samples; they are followed by one node per
    conversion on the locus, at the conversion's arrival height. If
    ``locus`` is None the graph must have a single locus.
    """
    if locus is None:
        if graph.num_loci != 1:
            raise ValueError("Must specify a locus for multi-locus graphs")
        locus = graph.loci[0]
    locus = graph.locus(locus)
    conversions = graph.get_conversions(locus)
    conversion_index = {id(conv): j for j, conv in enumerate(conversions)}

    tables = tskit.TableCollection(sequence_length=locus.site_count)
    tables.nodes.metadata_schema = tskit.MetadataSchema.permissive_json()
    for u in range(graph.num_nodes):
        flags = tskit.NODE_IS_SAMPLE if graph.is_leaf(u) else 0
        tables.nodes.add_row(
            flags=flags, time=graph.height(u), metadata={"label": graph.label(u)}
        )
    for conv in conversions:
        tables.nodes.add_row(
            time=conv.height2,
            metadata={
                "locus": conv.locus,
                "start_site": conv.start_site,
                "end_site": conv.end_site,
            },
        )

    def output_id(node):
        if node.conversion is None:
            return node.cf_node
        return graph.num_nodes + conversion_index[id(node.conversion)]

    intervals = collections.defaultdict(list)
    for region, tree in marginal_trees(graph, locus):
        for node in tree.nodes:
            for child in node.children:
                key = (output_id(node), output_id(tree.nodes[child]))
                spans = intervals[key]
                if len(spans) > 0 and spans[-1][1] == region.left:
                    spans[-1][1] = region.right
                else:
                    spans.append([region.left, region.right])
    for (parent, child), spans in intervals.items():
        for left, right in spans:
            tables.edges.add_row(left=left, right=right, parent=parent, child=child)
    tables.sort()
    if record_provenance:
        parameters = {"command": "export", "locus": locus.name}
        tables.provenances.add_row(
            provenance.json_encode_provenance(
                provenance.get_provenance_dict(parameters)
            )
        )
    logger.debug(
        "Exported locus %s with %d edges", locus.name, tables.edges.num_rows
    )
    return tables.tree_sequence()
