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
The chronological list of clonal frame events.
"""
from __future__ import annotations

import bisect
import dataclasses
import enum
from typing import List


class EventType(enum.Enum):
    SAMPLE = 0
    COALESCENCE = 1


@dataclasses.dataclass(frozen=True)
class CFEvent:
    """
    A sample or coalescence on the clonal frame.

    :ivar height: The height of the event.
    :ivar type: Whether a lineage is added (SAMPLE) or two lineages merge
        (COALESCENCE).
    :ivar lineage_count: The number of clonal frame lineages extant
        immediately after the event.
    :ivar node: The clonal frame node at which the event happens.
    """

    height: float
    type: EventType  # noqa: A003
    lineage_count: int
    node: int

    @property
    def is_coalescence(self):
        return self.type == EventType.COALESCENCE


def cf_events(graph) -> List[CFEvent]:
    """
    Returns the clonal frame events of the specified graph in ascending order
    of height. Where a sample and a coalescence share a height the sample
    comes first, so lineage counts never drop below one.
    """
    keyed = []
    for u in graph.postorder():
        event_type = EventType.SAMPLE if graph.is_leaf(u) else EventType.COALESCENCE
        keyed.append((graph.height(u), event_type.value, u))
    keyed.sort()
    ret = []
    k = 0
    for height, type_value, u in keyed:
        event_type = EventType(type_value)
        k += 1 if event_type == EventType.SAMPLE else -1
        ret.append(CFEvent(height=height, type=event_type, lineage_count=k, node=u))
    return ret


def find_interval(cf_events: List[CFEvent], height: float) -> int:
    """
    Returns the index of the last event at or below the specified height,
    or -1 if the height is below every event.
    """
    heights = [event.height for event in cf_events]
    return bisect.bisect_right(heights, height) - 1


def integrate_lineages(population, cf_events: List[CFEvent], height1, height2):
    """
    Returns the integral of the clonal frame lineage count weighted by the
    inverse population size between the specified heights, which is the
    total rate at which a free lineage coalesces with the clonal frame.
    """
    total = 0.0
    j = max(find_interval(cf_events, height1), 0)
    while j < len(cf_events) and cf_events[j].height < height2:
        lower = max(cf_events[j].height, height1)
        if j + 1 < len(cf_events):
            upper = min(cf_events[j + 1].height, height2)
        else:
            upper = height2
        if upper > lower:
            total += cf_events[j].lineage_count * population.integral(lower, upper)
        j += 1
    return total
