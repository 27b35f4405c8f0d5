"""Tests for text lane packing."""

from reelgraph.timeline.lanes import assign_lanes, lane_count, overlaps

from factories import make_text


class TestAssignLanes:
    def test_greedy_first_fit(self):
        """[0,2), [1,3), [5,6) pack into lanes 0, 1, 0."""
        a = make_text(0, 2)
        b = make_text(1, 3)
        c = make_text(5, 6)
        assert assign_lanes([a, b, c]) == {a.id: 0, b.id: 1, c.id: 0}

    def test_touching_elements_share_a_lane(self):
        a = make_text(0, 2)
        b = make_text(2, 4)
        assert not overlaps(a, b)
        assert assign_lanes([a, b]) == {a.id: 0, b.id: 0}

    def test_z_index_orders_packing(self):
        low = make_text(1, 3, z_index=0)
        high = make_text(0, 2, z_index=1)
        # low is placed first even though it starts later
        assert assign_lanes([high, low]) == {low.id: 0, high.id: 1}

    def test_lane_count(self):
        elements = [make_text(0, 5), make_text(1, 4), make_text(2, 3)]
        assert lane_count(elements) == 3
        assert lane_count([]) == 0
