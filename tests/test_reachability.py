import unittest

from chipflow.calculation.models import SegmentKey, internal_node_id
from chipflow.calculation.reachability import HighlightTracker, ReachabilityGraph, find_reachable
from helpers import outlet, pump, straight, tee, tube


def chain():
    comps = [pump("P", 1000.0), straight("S", 1e12), outlet("O")]
    conns = [tube("c1", "P", "out", "S", "a", 1e12), tube("c2", "S", "b", "O", "in", 1e12)]
    return comps, conns


class TestReachability(unittest.TestCase):

    def test_straight_chip_between_pump_and_outlet(self):
        result = find_reachable(*chain())
        self.assertEqual(result.segments, {SegmentKey.of("P_out", "S_a"),
                                           SegmentKey.of("S_a", "S_b"),
                                           SegmentKey.of("S_b", "O_in")})
        self.assertEqual(result.connections, {"c1", "c2"})
        self.assertEqual(result.components, {"S"})
        self.assertTrue(result.is_reachable(SegmentKey.of("S_b", "S_a")))

    def test_orientation_of_connections_is_ignored(self):
        comps, _ = chain()
        conns = [tube("c1", "S", "a", "P", "out", 1e12), tube("c2", "O", "in", "S", "b", 1e12)]
        self.assertEqual(find_reachable(comps, conns).connections, {"c1", "c2"})

    def test_outlet_is_a_sink(self):
        comps = [pump("P", 1000.0), outlet("O"), straight("S", 1e12)]
        conns = [tube("c1", "P", "out", "O", "in", 1e12), tube("c2", "S", "a", "O", "in", 1e12)]
        result = find_reachable(comps, conns)
        self.assertEqual(result.connections, {"c1"})
        self.assertNotIn("S", result.components)
        self.assertNotIn("S_a", result.visited)

    def test_all_junction_arms_marked(self):
        comps = [pump("P", 1000.0), tee("T", 1e12), outlet("O")]
        conns = [tube("c1", "P", "out", "T", "a", 1e12), tube("c2", "T", "b", "O", "in", 1e12)]
        result = find_reachable(comps, conns)
        junction = internal_node_id("T")
        for port in ("T_a", "T_b", "T_c"):
            self.assertIn(SegmentKey.of(port, junction), result.segments)
        self.assertIn("T_c", result.visited)

    def test_invalid_resistance_does_not_block_reachability(self):
        comps, _ = chain()
        conns = [tube("c1", "P", "out", "S", "a", -5.0), tube("c2", "S", "b", "O", "in", 0.0)]
        self.assertEqual(find_reachable(comps, conns).connections, {"c1", "c2"})

    def test_no_pump_gives_empty_result(self):
        comps = [straight("S", 1e12), outlet("O")]
        result = find_reachable(comps, [tube("c1", "S", "b", "O", "in", 1e12)])
        self.assertEqual(result.segments, frozenset())
        self.assertEqual(result.visited, frozenset())

    def test_dangling_connection_ignored(self):
        comps, conns = chain()
        conns.append(tube("c3", "P", "out", "GHOST", "x", 1e12))
        graph = ReachabilityGraph(comps, conns)
        self.assertNotIn("GHOST_x", graph.adjacency)
        self.assertNotIn("c3", find_reachable(comps, conns).connections)

    def test_multiple_pumps_are_all_sources(self):
        comps = [pump("P1", 1.0), pump("P2", 1.0), straight("S1", 1e12), straight("S2", 1e12)]
        conns = [tube("c1", "P1", "out", "S1", "a", 1e12), tube("c2", "P2", "out", "S2", "a", 1e12)]
        self.assertEqual(find_reachable(comps, conns).components, {"S1", "S2"})


class TestHighlightTracker(unittest.TestCase):

    def test_removing_pump_side_connection_clears_downstream(self):
        tracker = HighlightTracker(*chain())
        self.assertEqual(len(tracker.highlighted), 3)
        update = tracker.remove_connection("c1")
        self.assertEqual(update.cleared, {SegmentKey.of("P_out", "S_a"),
                                          SegmentKey.of("S_a", "S_b"),
                                          SegmentKey.of("S_b", "O_in")})
        self.assertEqual(update.highlighted, frozenset())
        self.assertEqual(tracker.highlighted, frozenset())

    def test_adding_connection_highlights_new_path(self):
        comps, conns = chain()
        tracker = HighlightTracker(comps, conns[1:])
        self.assertEqual(tracker.highlighted, frozenset())
        update = tracker.add_connection(conns[0])
        self.assertEqual(len(update.highlighted), 3)
        self.assertEqual(update.cleared, frozenset())

    def test_removing_component_drops_its_connections(self):
        tracker = HighlightTracker(*chain())
        tracker.remove_component("S")
        self.assertEqual(sorted(tracker.connections), [])
        self.assertEqual(tracker.highlighted, frozenset())

    def test_moving_component_changes_nothing(self):
        tracker = HighlightTracker(*chain())
        before = tracker.highlighted
        update = tracker.move_component("S")
        self.assertEqual(update.highlighted, frozenset())
        self.assertEqual(update.cleared, frozenset())
        self.assertEqual(tracker.highlighted, before)


if __name__ == "__main__":
    unittest.main()
