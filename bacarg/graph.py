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
The ancestral conversion graph: a clonal frame plus conversion edges.
"""
from __future__ import annotations

import dataclasses
import math
from typing import Dict
from typing import List
from typing import Tuple
from typing import Union

from bacarg import core
from bacarg import events
from bacarg import exceptions
from bacarg import marginal

NULL = core.NULL


@dataclasses.dataclass(frozen=True)
class Locus:
    """
    A contiguous block of aligned sites. Conversions always fall within
    a single locus.

    :ivar name: The name of the locus, unique within a graph.
    :vartype name: str
    :ivar site_count: The number of sites in the locus.
    :vartype site_count: int
    """

    name: str
    site_count: int

    def __post_init__(self):
        if not isinstance(self.name, str) or len(self.name) == 0:
            raise exceptions.ConfigurationError("Locus name must be a non-empty string")
        if not core.isinteger(self.site_count) or self.site_count < 1:
            raise exceptions.ConfigurationError(
                f"Locus {self.name} must have a positive integer site count"
            )


@dataclasses.dataclass(eq=False)
class Conversion:
    """
    A gene conversion edge. The converted lineage leaves the clonal frame on
    the branch above ``node1`` at ``height1`` and joins the branch above
    ``node2`` at ``height2``, carrying sites ``start_site`` to ``end_site``
    (inclusive) of ``locus``.

    Conversions compare by identity: two conversions with the same values
    are still distinct events. Use :meth:`.astuple` to compare values.
    """

    locus: str
    start_site: int
    end_site: int
    node1: int = NULL
    height1: float = 0.0
    node2: int = NULL
    height2: float = 0.0

    @property
    def is_invisible(self) -> bool:
        return self.node1 == self.node2

    @property
    def span(self) -> int:
        return self.end_site - self.start_site + 1

    def astuple(self) -> tuple:
        return dataclasses.astuple(self)

    def copy(self) -> Conversion:
        return dataclasses.replace(self)


@dataclasses.dataclass
class Node:
    id: int  # noqa: A003
    height: float
    label: Union[str, None] = None
    parent: int = NULL
    children: List[int] = dataclasses.field(default_factory=list)

    @property
    def is_leaf(self):
        return len(self.children) == 0


class ConversionGraph:
    """
    A clonal frame together with the conversions on each locus.

    Nodes live in an arena and are addressed by stable integer IDs; the
    tree-editing methods only ever re-link existing nodes, so a node ID
    stored in a :class:`.Conversion` stays meaningful across any operator
    move.

    :param list loci: The :class:`.Locus` objects (or ``(name, site_count)``
        pairs) spanned by this graph.
    """

    def __init__(self, loci):
        if isinstance(loci, Locus):
            loci = [loci]
        self._loci: Dict[str, Locus] = {}
        for locus in loci:
            if not isinstance(locus, Locus):
                locus = Locus(*locus)
            if locus.name in self._loci:
                raise exceptions.ConfigurationError(f"Duplicate locus name {locus.name}")
            self._loci[locus.name] = locus
        if len(self._loci) == 0:
            raise exceptions.ConfigurationError("At least one locus is required")
        self._nodes: List[Node] = []
        self._root = NULL
        self._conversions: Dict[str, List[Conversion]] = {
            name: [] for name in self._loci
        }

    #
    # Construction
    #

    def add_node(self, height, label=None) -> int:
        """
        Adds a new detached node to the arena and returns its ID.
        """
        if height < 0:
            raise ValueError("Node heights must be non-negative")
        node_id = len(self._nodes)
        self._nodes.append(Node(id=node_id, height=float(height), label=label))
        return node_id

    #
    # Low-level tree edits. These do not maintain tree validity on their own;
    # callers must restore the invariants before returning.
    #

    def remove_child(self, parent: int, child: int):
        node = self._nodes[parent]
        if child not in node.children:
            raise exceptions.InvariantError(f"Node {child} is not a child of {parent}")
        node.children.remove(child)
        self._nodes[child].parent = NULL

    def add_child(self, parent: int, child: int, index=None):
        if self._nodes[child].parent != NULL:
            raise exceptions.InvariantError(f"Node {child} already has a parent")
        children = self._nodes[parent].children
        if index is None:
            children.append(child)
        else:
            children.insert(index, child)
        self._nodes[child].parent = parent

    def set_height(self, node: int, height: float):
        self._nodes[node].height = float(height)

    def set_root(self, node: int):
        if self._nodes[node].parent != NULL:
            raise exceptions.InvariantError(f"Root node {node} cannot have a parent")
        self._root = node

    #
    # Named tree-edit primitives shared by topology operators.
    #

    def redirect_conversions(self, source: int, dest: int, above=None):
        """
        Re-points every conversion endpoint on the branch above ``source`` to
        ``dest``. If ``above`` is specified only endpoints strictly higher
        than this height are moved.
        """
        for conv in self._iter_conversions():
            if conv.node1 == source and (above is None or conv.height1 > above):
                conv.node1 = dest
            if conv.node2 == source and (above is None or conv.height2 > above):
                conv.node2 = dest

    def detach_and_promote_sibling(self, node: int) -> Tuple[int, int]:
        """
        Removes the parent of the specified node from the clonal frame,
        leaving the parent as a detached unary node whose only child is
        ``node``. The sibling of ``node`` takes the parent's place (becoming
        the root if the parent was the root) and inherits every conversion
        endpoint that referenced the parent's branch.

        Returns the tuple ``(parent, sibling)``.
        """
        parent = self.parent(node)
        if parent == NULL:
            raise exceptions.InvariantError(f"Cannot detach root node {node}")
        sibling = self.sibling(node)
        grandparent = self.parent(parent)
        self.remove_child(parent, sibling)
        if grandparent == NULL:
            self._root = NULL
            self.set_root(sibling)
        else:
            index = self._nodes[grandparent].children.index(parent)
            self.remove_child(grandparent, parent)
            self.add_child(grandparent, sibling, index=index)
        self.redirect_conversions(parent, sibling)
        return parent, sibling

    def graft(self, node: int, target: int, height: float):
        """
        Inserts the detached unary ``node`` at the specified height on the
        branch above ``target``, making ``target`` its second child. If
        ``target`` is the root, ``node`` becomes the new root. Conversion
        endpoints on ``target``'s branch above ``height`` now lie on the
        branch above ``node`` and are re-pointed accordingly. An endpoint at
        exactly ``height`` on ``target``'s branch cannot be placed, and an
        :class:`.InvariantError` is raised before the graph is changed.
        """
        if self.parent(node) != NULL or node == self._root:
            raise exceptions.InvariantError(f"Node {node} is not detached")
        if len(self._nodes[node].children) != 1:
            raise exceptions.InvariantError(f"Grafted node {node} must be unary")
        for conv in self._iter_conversions():
            if (conv.node1 == target and conv.height1 == height) or (
                conv.node2 == target and conv.height2 == height
            ):
                raise exceptions.InvariantError(
                    f"Conversion endpoint at height {height} on the branch above "
                    f"node {target} conflicts with the graft"
                )
        self.set_height(node, height)
        self.redirect_conversions(target, node, above=height)
        grandparent = self.parent(target)
        if grandparent == NULL:
            self.add_child(node, target)
            self.set_root(node)
        else:
            index = self._nodes[grandparent].children.index(target)
            self.remove_child(grandparent, target)
            self.add_child(grandparent, node, index=index)
            self.add_child(node, target)

    #
    # Node queries
    #

    @property
    def root(self) -> int:
        return self._root

    @property
    def num_nodes(self) -> int:
        return len(self._nodes)

    def node(self, u: int) -> Node:
        return self._nodes[u]

    def parent(self, u: int) -> int:
        return self._nodes[u].parent

    def children(self, u: int) -> Tuple[int, ...]:
        return tuple(self._nodes[u].children)

    def height(self, u: int) -> float:
        return self._nodes[u].height

    def label(self, u: int) -> str:
        label = self._nodes[u].label
        return str(u) if label is None else label

    def is_leaf(self, u: int) -> bool:
        return self._nodes[u].is_leaf

    def is_root(self, u: int) -> bool:
        return u == self._root

    def sibling(self, u: int) -> int:
        parent = self.parent(u)
        if parent == NULL:
            return NULL
        for v in self._nodes[parent].children:
            if v != u:
                return v
        raise exceptions.InvariantError(f"Node {u} has no sibling")

    def branch_length(self, u: int) -> float:
        parent = self.parent(u)
        if parent == NULL:
            return 0.0
        return self._nodes[parent].height - self._nodes[u].height

    def leaves(self) -> List[int]:
        return [node.id for node in self._nodes if node.is_leaf]

    @property
    def num_leaves(self) -> int:
        return len(self.leaves())

    def postorder(self):
        """
        Returns an iterator over the nodes reachable from the root, children
        before their parents.
        """
        if self._root == NULL:
            return
        stack = [(self._root, False)]
        while len(stack) > 0:
            u, expanded = stack.pop()
            if expanded:
                yield u
            else:
                stack.append((u, True))
                for v in reversed(self._nodes[u].children):
                    stack.append((v, False))

    def lineages_at(self, height: float) -> List[int]:
        """
        Returns the sorted IDs of the nodes whose branch spans the specified
        height, that is ``height(u) <= height < height(parent(u))``. Above
        the root, the root's own branch is the only lineage.
        """
        ret = []
        for node in self._nodes:
            if node.height > height:
                continue
            if node.id == self._root:
                ret.append(node.id)
            elif node.parent != NULL and height < self._nodes[node.parent].height:
                ret.append(node.id)
        return ret

    def get_clonal_frame_length(self) -> float:
        """
        Returns the total branch length of the clonal frame, which is the
        support of a uniformly chosen departure point.
        """
        return sum(self.branch_length(u) for u in range(len(self._nodes)))

    def get_cf_events(self) -> List[events.CFEvent]:
        return events.cf_events(self)

    #
    # Loci and conversions
    #

    @property
    def loci(self) -> Tuple[Locus, ...]:
        return tuple(self._loci.values())

    @property
    def num_loci(self) -> int:
        return len(self._loci)

    def locus(self, name) -> Locus:
        if isinstance(name, Locus):
            name = name.name
        if name not in self._loci:
            raise KeyError(f"Unknown locus {name}")
        return self._loci[name]

    def get_regions(self, locus) -> List[marginal.Region]:
        return marginal.regions(self, self.locus(locus))

    def _iter_conversions(self):
        for conversions in self._conversions.values():
            yield from conversions

    def get_conversions(self, locus=None) -> List[Conversion]:
        """
        Returns the conversions on the specified locus, or on all loci
        in locus order if ``locus`` is None.
        """
        if locus is None:
            return list(self._iter_conversions())
        return list(self._conversions[self.locus(locus).name])

    def get_total_conversion_count(self) -> int:
        return sum(len(conversions) for conversions in self._conversions.values())

    def get_total_sequence_length(self) -> int:
        return sum(locus.site_count for locus in self._loci.values())

    def _check_conversion(self, conv):
        if conv.locus not in self._loci:
            raise exceptions.ConfigurationError(
                f"Conversion refers to unknown locus {conv.locus}"
            )
        locus = self._loci[conv.locus]
        if not 0 <= conv.start_site <= conv.end_site < locus.site_count:
            raise exceptions.ConfigurationError(
                f"Conversion sites [{conv.start_site}, {conv.end_site}] not within "
                f"locus {locus.name} of length {locus.site_count}"
            )
        for node in (conv.node1, conv.node2):
            if not 0 <= node < len(self._nodes):
                raise exceptions.InvariantError(
                    f"Conversion refers to non-existent node {node}"
                )
        if conv.height1 > conv.height2:
            raise exceptions.InvariantError(
                f"Conversion departs at {conv.height1} after arriving at "
                f"{conv.height2}"
            )

    def add_conversion(self, conv: Conversion):
        self._check_conversion(conv)
        self._conversions[conv.locus].append(conv)

    def delete_conversion(self, conv: Conversion):
        conversions = self._conversions.get(conv.locus, [])
        for j, other in enumerate(conversions):
            if other is conv:
                del conversions[j]
                return
        raise ValueError("Conversion is not present in the graph")

    #
    # Validation, copying and comparison
    #

    def _on_branch(self, u, height):
        if height < self._nodes[u].height:
            return False
        parent = self._nodes[u].parent
        return parent == NULL or height < self._nodes[parent].height

    def check_invariants(self):
        """
        Checks the structural invariants of the graph, raising an
        :class:`.InvariantError` describing the first violation found.
        """
        if self._root == NULL:
            raise exceptions.InvariantError("Graph has no root")
        if self._nodes[self._root].parent != NULL:
            raise exceptions.InvariantError(f"Root {self._root} has a parent")
        reached = 0
        for u in self.postorder():
            reached += 1
            node = self._nodes[u]
            if node.height < 0:
                raise exceptions.InvariantError(f"Node {u} has negative height")
            if len(node.children) not in (0, 2):
                raise exceptions.InvariantError(
                    f"Node {u} has {len(node.children)} children; "
                    "the clonal frame must be binary"
                )
            for v in node.children:
                if self._nodes[v].parent != u:
                    raise exceptions.InvariantError(
                        f"Node {v} is a child of {u} but has parent "
                        f"{self._nodes[v].parent}"
                    )
                if not self._nodes[v].height < node.height:
                    raise exceptions.InvariantError(
                        f"Node {u} at height {node.height} is not above its "
                        f"child {v} at height {self._nodes[v].height}"
                    )
        if reached != len(self._nodes):
            raise exceptions.InvariantError(
                f"Only {reached} of {len(self._nodes)} nodes are reachable from "
                "the root"
            )
        for conv in self._iter_conversions():
            self._check_conversion(conv)
            if not self._on_branch(conv.node1, conv.height1):
                raise exceptions.InvariantError(
                    f"Conversion departure height {conv.height1} is not on the "
                    f"branch above node {conv.node1}"
                )
            if not self._on_branch(conv.node2, conv.height2):
                raise exceptions.InvariantError(
                    f"Conversion arrival height {conv.height2} is not on the "
                    f"branch above node {conv.node2}"
                )

    def copy(self) -> ConversionGraph:
        """
        Returns a deep copy of this graph. Node IDs are preserved.
        """
        other = ConversionGraph(list(self._loci.values()))
        other._nodes = [dataclasses.replace(node, children=list(node.children))
                        for node in self._nodes]
        other._root = self._root
        other._conversions = {
            name: [conv.copy() for conv in conversions]
            for name, conversions in self._conversions.items()
        }
        return other

    def _clades(self):
        clades = {}
        for u in self.postorder():
            children = self._nodes[u].children
            if len(children) == 0:
                clades[u] = (self.label(u),)
            else:
                clades[u] = tuple(sorted(sum((clades[v] for v in children), ())))
        return clades

    def _canonical(self):
        clades = self._clades()
        nodes = sorted((clades[u], self._nodes[u].height) for u in clades)
        conversions = sorted(
            (
                conv.locus,
                conv.start_site,
                conv.end_site,
                clades[conv.node1],
                clades[conv.node2],
                conv.height1,
                conv.height2,
            )
            for conv in self._iter_conversions()
        )
        return nodes, conversions

    def equals(self, other: ConversionGraph, *, rel_tol=1e-9, abs_tol=1e-12) -> bool:
        """
        Returns True if the two graphs have the same loci, the same clonal
        frame topology (nodes identified by the set of leaf labels below
        them), node heights equal within tolerance and the same conversions.
        Node IDs and internal node labels are not compared.
        """

        def close(a, b):
            return math.isclose(a, b, rel_tol=rel_tol, abs_tol=abs_tol)

        if self.loci != other.loci:
            return False
        nodes1, convs1 = self._canonical()
        nodes2, convs2 = other._canonical()
        if len(nodes1) != len(nodes2) or len(convs1) != len(convs2):
            return False
        for (clade1, h1), (clade2, h2) in zip(nodes1, nodes2):
            if clade1 != clade2 or not close(h1, h2):
                return False
        for c1, c2 in zip(convs1, convs2):
            if c1[:5] != c2[:5] or not (close(c1[5], c2[5]) and close(c1[6], c2[6])):
                return False
        return True

    def __repr__(self):
        return (
            f"ConversionGraph(num_nodes={self.num_nodes}, "
            f"num_loci={self.num_loci}, "
            f"num_conversions={self.get_total_conversion_count()})"
        )
