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
Reading and writing conversion graphs in extended Newick format.

A graph is written as zero or more conversion records followed by the
Newick string of the clonal frame, for example::

    [&locus,500,1299,0,0.2,1,0.8] (0:1.0,1:1.0)2:1.0;

Each record gives the locus name, start and end sites, the label of the
departure node, the departure height, the label of the arrival node and the
arrival height. The length slot of the root holds the root height, so that
leaves need not be at height zero.
"""
import logging
import re

import newick

from bacarg import exceptions
from bacarg import graph as graph_module

logger = logging.getLogger(__name__)

_RECORD = re.compile(r"\s*\[&([^\]]*)\]")
_RESERVED = re.compile(r"[\s,:;()\[\]]")


def _fmt(x):
    return repr(float(x))


def _node_labels(graph):
    labels = [graph.label(u) for u in range(graph.num_nodes)]
    if len(set(labels)) != len(labels):
        raise ValueError("Node labels must be unique to write a conversion graph")
    for label in labels:
        if len(label) == 0 or _RESERVED.search(label) is not None:
            raise ValueError(f"Node label '{label}' cannot be written in Newick")
    return labels


def write_clonal_frame(graph, labels=None):
    """
    Returns the Newick string of the clonal frame of the specified graph,
    with every node labelled.
    """
    if labels is None:
        labels = _node_labels(graph)
    strings = {}
    for u in graph.postorder():
        children = graph.children(u)
        if len(children) == 0:
            s = labels[u]
        else:
            s = "(" + ",".join(strings.pop(v) for v in children) + ")" + labels[u]
        if graph.is_root(u):
            length = graph.height(u)
        else:
            length = graph.branch_length(u)
        strings[u] = f"{s}:{_fmt(length)}"
    return strings[graph.root] + ";"


def write_acg(graph):
    """
    Returns the extended Newick representation of the specified graph.
    """
    labels = _node_labels(graph)
    parts = []
    for conv in graph.get_conversions():
        if "," in conv.locus or "]" in conv.locus:
            raise ValueError(f"Locus name '{conv.locus}' cannot be written")
        fields = [
            conv.locus,
            str(conv.start_site),
            str(conv.end_site),
            labels[conv.node1],
            _fmt(conv.height1),
            labels[conv.node2],
            _fmt(conv.height2),
        ]
        parts.append("[&" + ",".join(fields) + "]")
    parts.append(write_clonal_frame(graph, labels))
    return " ".join(parts)


def _parse_record(record, label_map):
    fields = record.split(",")
    if len(fields) != 7:
        raise exceptions.FileFormatError(
            f"Conversion record '{record}' must have 7 fields"
        )
    try:
        return graph_module.Conversion(
            locus=fields[0].strip(),
            start_site=int(fields[1]),
            end_site=int(fields[2]),
            node1=label_map[fields[3].strip()],
            height1=float(fields[4]),
            node2=label_map[fields[5].strip()],
            height2=float(fields[6]),
        )
    except KeyError as ke:
        raise exceptions.FileFormatError(
            f"Conversion record '{record}' refers to unknown node {ke}"
        )
    except ValueError as ve:
        raise exceptions.FileFormatError(
            f"Malformed conversion record '{record}': {ve}"
        )


def parse_acg(text, loci):
    """
    Parses the specified extended Newick string and returns the
    corresponding :class:`.ConversionGraph` over the specified loci.
    """
    records = []
    pos = 0
    while True:
        match = _RECORD.match(text, pos)
        if match is None:
            break
        records.append(match.group(1))
        pos = match.end()
    tree_text = text[pos:].strip()
    try:
        parsed = newick.loads(tree_text)
    except ValueError as e:
        raise exceptions.FileFormatError(f"Not a valid newick tree: {e}")
    if len(parsed) != 1:
        raise exceptions.FileFormatError(f"Not a valid newick tree: '{tree_text}'")
    root = parsed[0]

    # Set node depths (distances from root).
    stack = [(root, 0)]
    max_depth = 0
    while len(stack) > 0:
        node, depth = stack.pop()
        if depth > max_depth:
            max_depth = depth
        node.depth = depth
        for child in node.descendants:
            stack.append((child, depth + child.length))
    root_height = root.length if root.length > 0 else max_depth

    graph = graph_module.ConversionGraph(loci)
    ids = {}
    postorder = list(root.walk(mode="postorder"))
    # Leaves take the first IDs, in the order they appear.
    for node in postorder:
        if node.is_leaf:
            ids[id(node)] = graph.add_node(
                max(0.0, root_height - node.depth), label=node.name or None
            )
    for node in postorder:
        if not node.is_leaf:
            ids[id(node)] = graph.add_node(
                max(0.0, root_height - node.depth), label=node.name or None
            )
    for node in postorder:
        for child in node.descendants:
            graph.add_child(ids[id(node)], ids[id(child)])
    graph.set_root(ids[id(root)])

    label_map = {}
    for u in range(graph.num_nodes):
        label = graph.label(u)
        if label in label_map:
            raise exceptions.FileFormatError(f"Duplicate node label '{label}'")
        label_map[label] = u
    try:
        for record in records:
            graph.add_conversion(_parse_record(record, label_map))
        graph.check_invariants()
    except (exceptions.InvariantError, exceptions.ConfigurationError) as e:
        raise exceptions.FileFormatError(f"Invalid conversion graph: {e}")
    logger.debug("Parsed %r", graph)
    return graph
