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
Tests for the conversion graph data model.
"""
import pytest

import bacarg
from tests import graphutil


def conversion(node1, height1, node2, height2, start=0, end=9, locus="locus"):
    return bacarg.Conversion(
        locus=locus,
        start_site=start,
        end_site=end,
        node1=node1,
        height1=height1,
        node2=node2,
        height2=height2,
    )


class TestLocus:
    @pytest.mark.parametrize("name", ["", None, 1])
    def test_bad_name(self, name):
        with pytest.raises(bacarg.ConfigurationError):
            bacarg.Locus(name, 10)

    @pytest.mark.parametrize("site_count", [0, -1, 1.5, None])
    def test_bad_site_count(self, site_count):
        with pytest.raises(bacarg.ConfigurationError):
            bacarg.Locus("x", site_count)

    def test_tuples_accepted(self):
        graph = bacarg.ConversionGraph([("a", 10), ("b", 20)])
        assert graph.loci == (bacarg.Locus("a", 10), bacarg.Locus("b", 20))
        assert graph.get_total_sequence_length() == 30

    def test_duplicate_names(self):
        with pytest.raises(bacarg.ConfigurationError):
            bacarg.ConversionGraph([("a", 10), ("a", 20)])

    def test_no_loci(self):
        with pytest.raises(bacarg.ConfigurationError):
            bacarg.ConversionGraph([])

    def test_unknown_locus(self, two_leaf_fixture):
        with pytest.raises(KeyError):
            two_leaf_fixture.locus("nope")


class TestTreeEdits:
    def test_negative_height(self):
        graph = graphutil.two_leaf_graph()
        with pytest.raises(ValueError):
            graph.add_node(-1)

    def test_add_child_with_parent(self, two_leaf_fixture):
        u = two_leaf_fixture.add_node(2)
        with pytest.raises(bacarg.InvariantError):
            two_leaf_fixture.add_child(u, 0)

    def test_remove_non_child(self, two_leaf_fixture):
        with pytest.raises(bacarg.InvariantError):
            two_leaf_fixture.remove_child(0, 1)

    def test_set_root_with_parent(self, two_leaf_fixture):
        with pytest.raises(bacarg.InvariantError):
            two_leaf_fixture.set_root(0)

    def test_remove_add_child(self, two_leaf_fixture):
        graph = two_leaf_fixture
        graph.remove_child(2, 0)
        assert graph.parent(0) == bacarg.NULL
        assert graph.children(2) == (1,)
        graph.add_child(2, 0)
        assert graph.children(2) == (1, 0)
        graph.check_invariants()

    def test_set_height(self, two_leaf_fixture):
        two_leaf_fixture.set_height(2, 3.5)
        assert two_leaf_fixture.height(2) == 3.5
        assert two_leaf_fixture.get_clonal_frame_length() == 7


class TestQueries:
    def test_structure(self, balanced_four_fixture):
        graph = balanced_four_fixture
        assert graph.root == 6
        assert graph.num_nodes == 7
        assert graph.leaves() == [0, 1, 2, 3]
        assert graph.num_leaves == 4
        assert graph.parent(0) == 4
        assert graph.parent(6) == bacarg.NULL
        assert graph.children(6) == (4, 5)
        assert graph.sibling(0) == 1
        assert graph.sibling(5) == 4
        assert graph.sibling(6) == bacarg.NULL
        assert graph.is_leaf(3)
        assert not graph.is_leaf(4)
        assert graph.is_root(6)
        assert graph.label(3) == "3"

    def test_branch_lengths(self, balanced_four_fixture):
        graph = balanced_four_fixture
        assert graph.branch_length(0) == 0.5
        assert graph.branch_length(2) == 0.3
        assert graph.branch_length(4) == 0.5
        assert graph.branch_length(5) == pytest.approx(0.7)
        assert graph.branch_length(6) == 0
        assert graph.get_clonal_frame_length() == pytest.approx(2.8)

    def test_postorder(self, balanced_four_fixture):
        assert list(balanced_four_fixture.postorder()) == [0, 1, 4, 2, 3, 5, 6]

    @pytest.mark.parametrize(
        ["height", "lineages"],
        [
            (0, [0, 1, 2, 3]),
            (0.2, [0, 1, 2, 3]),
            (0.3, [0, 1, 5]),
            (0.4, [0, 1, 5]),
            (0.5, [4, 5]),
            (0.99, [4, 5]),
            (1.0, [6]),
            (100, [6]),
        ],
    )
    def test_lineages_at(self, balanced_four_fixture, height, lineages):
        assert balanced_four_fixture.lineages_at(height) == lineages

    def test_labels(self):
        graph = graphutil.random_graph(5, seed=1)
        assert sorted(graph.label(u) for u in graph.leaves()) == [
            f"t{j}" for j in range(5)
        ]
        graph.check_invariants()


class TestConversions:
    def test_add_delete(self, balanced_four_fixture):
        graph = balanced_four_fixture
        c1 = conversion(0, 0.1, 2, 0.2)
        c2 = conversion(0, 0.1, 2, 0.2)
        graph.add_conversion(c1)
        graph.add_conversion(c2)
        assert graph.get_total_conversion_count() == 2
        assert c1.astuple() == c2.astuple()
        assert c1 != c2
        graph.delete_conversion(c2)
        conversions = graph.get_conversions()
        assert len(conversions) == 1
        assert conversions[0] is c1
        with pytest.raises(ValueError):
            graph.delete_conversion(c2)

    def test_per_locus(self):
        loci = [bacarg.Locus("a", 100), bacarg.Locus("b", 50)]
        graph = graphutil.balanced_four_graph(loci)
        ca = conversion(0, 0.1, 2, 0.2, locus="a")
        cb = conversion(1, 0.1, 3, 0.2, locus="b")
        graph.add_conversion(cb)
        graph.add_conversion(ca)
        assert graph.get_conversions("a") == [ca]
        assert graph.get_conversions(loci[1]) == [cb]
        assert graph.get_conversions() == [ca, cb]
        assert graph.get_total_conversion_count() == 2
        assert graph.get_total_sequence_length() == 150
        assert graph.num_loci == 2

    def test_invisible(self):
        assert conversion(0, 0.1, 0, 0.2).is_invisible
        assert not conversion(0, 0.1, 1, 0.2).is_invisible

    def test_span(self):
        assert conversion(0, 0.1, 0, 0.2, start=5, end=9).span == 5

    def test_unknown_locus(self, balanced_four_fixture):
        with pytest.raises(bacarg.ConfigurationError):
            balanced_four_fixture.add_conversion(
                conversion(0, 0.1, 2, 0.2, locus="x")
            )

    @pytest.mark.parametrize(["start", "end"], [(-1, 5), (5, 4), (0, 1000)])
    def test_bad_sites(self, balanced_four_fixture, start, end):
        with pytest.raises(bacarg.ConfigurationError):
            balanced_four_fixture.add_conversion(
                conversion(0, 0.1, 2, 0.2, start=start, end=end)
            )

    def test_height_order(self, balanced_four_fixture):
        with pytest.raises(bacarg.InvariantError):
            balanced_four_fixture.add_conversion(conversion(0, 0.3, 2, 0.2))

    @pytest.mark.parametrize("node", [-1, 7, 100])
    def test_dangling_node(self, balanced_four_fixture, node):
        with pytest.raises(bacarg.InvariantError):
            balanced_four_fixture.add_conversion(conversion(node, 0.1, 2, 0.2))


class TestCheckInvariants:
    def test_valid(self, balanced_four_fixture):
        balanced_four_fixture.add_conversion(conversion(0, 0.1, 6, 2.0))
        balanced_four_fixture.check_invariants()

    def test_no_root(self):
        graph = bacarg.ConversionGraph([("x", 10)])
        graph.add_node(0)
        with pytest.raises(bacarg.InvariantError, match="no root"):
            graph.check_invariants()

    def test_unary_node(self, balanced_four_fixture):
        graph = balanced_four_fixture
        graph.remove_child(4, 1)
        with pytest.raises(bacarg.InvariantError, match="binary"):
            graph.check_invariants()

    def test_height_inversion(self, balanced_four_fixture):
        balanced_four_fixture.set_height(4, 1.5)
        with pytest.raises(bacarg.InvariantError, match="not above"):
            balanced_four_fixture.check_invariants()

    def test_unreachable_node(self, balanced_four_fixture):
        balanced_four_fixture.add_node(0)
        with pytest.raises(bacarg.InvariantError, match="reachable"):
            balanced_four_fixture.check_invariants()

    def test_departure_off_branch(self, balanced_four_fixture):
        balanced_four_fixture.add_conversion(conversion(2, 0.4, 6, 2.0))
        with pytest.raises(bacarg.InvariantError, match="departure"):
            balanced_four_fixture.check_invariants()

    def test_arrival_off_branch(self, balanced_four_fixture):
        balanced_four_fixture.add_conversion(conversion(0, 0.1, 4, 0.2))
        with pytest.raises(bacarg.InvariantError, match="arrival"):
            balanced_four_fixture.check_invariants()


class TestDetachAndGraft:
    def test_detach(self, balanced_four_fixture):
        graph = balanced_four_fixture
        c = conversion(2, 0.1, 4, 0.8)
        graph.add_conversion(c)
        parent, sibling = graph.detach_and_promote_sibling(0)
        assert (parent, sibling) == (4, 1)
        assert graph.children(6) == (1, 5)
        assert graph.children(4) == (0,)
        assert graph.parent(4) == bacarg.NULL
        assert c.node2 == 1
        assert c.node1 == 2

    def test_detach_below_root(self, two_leaf_fixture):
        graph = two_leaf_fixture
        parent, sibling = graph.detach_and_promote_sibling(0)
        assert (parent, sibling) == (2, 1)
        assert graph.root == 1
        assert graph.parent(1) == bacarg.NULL

    def test_detach_root(self, two_leaf_fixture):
        with pytest.raises(bacarg.InvariantError):
            two_leaf_fixture.detach_and_promote_sibling(2)

    def test_graft_not_detached(self, balanced_four_fixture):
        with pytest.raises(bacarg.InvariantError):
            balanced_four_fixture.graft(4, 2, 0.2)

    def test_detach_graft_round_trip(self, balanced_four_fixture):
        graph = balanced_four_fixture
        original = graph.copy()
        c = conversion(2, 0.1, 4, 0.8)
        graph.add_conversion(c)
        original.add_conversion(c.copy())

        graph.detach_and_promote_sibling(0)
        graph.graft(4, 2, 0.2)
        assert graph.children(5) == (4, 3)
        assert graph.children(4) == (0, 2)
        assert graph.height(4) == 0.2
        assert (c.node1, c.node2) == (2, 1)
        graph.check_invariants()
        assert not graph.equals(original)

        graph.detach_and_promote_sibling(0)
        graph.graft(4, 1, 0.5)
        graph.check_invariants()
        assert (c.node1, c.node2) == (2, 4)
        assert graph.equals(original)
        assert graph.children(6) == (4, 5)

    def test_graft_above_root(self, balanced_four_fixture):
        graph = balanced_four_fixture
        c = conversion(3, 0.1, 6, 1.5)
        graph.add_conversion(c)
        graph.detach_and_promote_sibling(0)
        graph.graft(4, 6, 1.2)
        assert graph.root == 4
        assert graph.children(4) == (0, 6)
        assert c.node2 == 4
        graph.check_invariants()

    def test_graft_at_endpoint_height(self, balanced_four_fixture):
        graph = balanced_four_fixture
        c = conversion(3, 0.1, 6, 1.5)
        graph.add_conversion(c)
        graph.detach_and_promote_sibling(0)
        with pytest.raises(bacarg.InvariantError):
            graph.graft(4, 6, 1.5)
        assert graph.height(4) == 0.5
        assert graph.parent(4) == bacarg.NULL
        assert c.node2 == 6

    def test_redirect_above(self, balanced_four_fixture):
        graph = balanced_four_fixture
        low = conversion(0, 0.1, 2, 0.1)
        high = conversion(0, 0.3, 2, 0.35)
        graph.add_conversion(low)
        graph.add_conversion(high)
        graph.redirect_conversions(0, 1, above=0.2)
        assert low.node1 == 0
        assert high.node1 == 1
        graph.redirect_conversions(2, 3)
        assert low.node2 == 3
        assert high.node2 == 3


class TestCopyAndEquals:
    def test_copy_independent(self, balanced_four_fixture):
        graph = balanced_four_fixture
        graph.add_conversion(conversion(0, 0.1, 2, 0.2))
        other = graph.copy()
        assert graph.equals(other)
        other.set_height(6, 2.0)
        other.get_conversions()[0].height2 = 0.25
        assert graph.height(6) == 1.0
        assert graph.get_conversions()[0].height2 == 0.2
        assert not graph.equals(other)

    def test_equals_ignores_ids(self):
        g1 = graphutil.two_leaf_graph()
        g2 = bacarg.ConversionGraph([bacarg.Locus("locus", 10000)])
        root = g2.add_node(1.0, label="2")
        a = g2.add_node(0, label="1")
        b = g2.add_node(0, label="0")
        g2.add_child(root, a)
        g2.add_child(root, b)
        g2.set_root(root)
        assert g1.equals(g2)
        g1.add_conversion(conversion(0, 0.2, 1, 0.8))
        assert not g1.equals(g2)
        g2.add_conversion(conversion(b, 0.2, a, 0.8))
        assert g1.equals(g2)

    def test_equals_tolerance(self, balanced_four_fixture):
        other = balanced_four_fixture.copy()
        other.set_height(4, 0.5 + 1e-12)
        assert balanced_four_fixture.equals(other)
        other.set_height(4, 0.5 + 1e-6)
        assert not balanced_four_fixture.equals(other)

    def test_different_loci(self, balanced_four_fixture):
        other = graphutil.balanced_four_graph([bacarg.Locus("locus", 999)])
        assert not balanced_four_fixture.equals(other)

    def test_repr(self, balanced_four_fixture):
        assert "num_nodes=7" in repr(balanced_four_fixture)
