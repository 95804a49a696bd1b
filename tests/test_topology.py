import math
import unittest

from chipflow.calculation.errors import DiagnosticCode, DuplicateNodeId, UnresolvedReference
from chipflow.calculation.models import (
    Component, Connection, NodeRole, SegmentKey, SegmentKind, internal_node_id,
)
from chipflow.calculation.physics import tubing_resistance
from chipflow.calculation.topology import GraphBuilder, build_network_graph
from helpers import cross, outlet, pump, straight, tee, tube


def codes(diagnostics):
    return [d.code for d in diagnostics]


class TestSegmentKey(unittest.TestCase):

    def test_order_independent(self):
        self.assertEqual(SegmentKey.of("b", "a"), SegmentKey.of("a", "b"))
        self.assertEqual(SegmentKey.of("b", "a").label, "a--b")
        self.assertEqual(hash(SegmentKey.of("x", "y")), hash(SegmentKey.of("y", "x")))

    def test_other_endpoint(self):
        key = SegmentKey.of("p", "q")
        self.assertEqual(key.other("p"), "q")
        self.assertEqual(key.other("q"), "p")
        self.assertIn("p", key)


class TestGraphBuilder(unittest.TestCase):

    def test_port_roles_and_boundary_pressures(self):
        graph = build_network_graph([pump("P", 1000.0), outlet("O"), straight("S", 1e12)], [])
        self.assertEqual(graph.nodes["P_out"].role, NodeRole.PUMP)
        self.assertEqual(graph.nodes["P_out"].known_pressure, 1000.0)
        self.assertEqual(graph.nodes["O_in"].role, NodeRole.OUTLET)
        self.assertEqual(graph.nodes["O_in"].known_pressure, 0.0)
        self.assertEqual(graph.nodes["S_a"].role, NodeRole.PORT)
        self.assertIsNone(graph.nodes["S_a"].known_pressure)

    def test_unconfigured_pump_defaults_to_zero_with_warning(self):
        graph = build_network_graph([pump("P")], [])
        self.assertEqual(graph.nodes["P_out"].known_pressure, 0.0)
        self.assertIn(DiagnosticCode.DEFAULT_PUMP_PRESSURE, codes(graph.warnings))

    def test_default_pump_pressure_is_configurable(self):
        graph = GraphBuilder([pump("P")], [], default_pump_pressure=2e4).build()
        self.assertEqual(graph.nodes["P_out"].known_pressure, 2e4)

    def test_prefixed_port_ids_are_not_prefixed_twice(self):
        comp = Component({"id": "P", "chipType": "pump", "ports": [{"id": "P_out"}],
                          "portPressures": {"out": 500.0}})
        graph = build_network_graph([comp], [])
        self.assertIn("P_out", graph.nodes)
        self.assertEqual(graph.nodes["P_out"].known_pressure, 500.0)

    def test_straight_chip_single_internal_segment(self):
        graph = build_network_graph([straight("S", 3e12)], [])
        key = SegmentKey.of("S_a", "S_b")
        self.assertEqual(list(graph.segments), [key])
        self.assertEqual(graph.segments[key].resistance, 3e12)
        self.assertEqual(graph.segments[key].kind, SegmentKind.INTERNAL_CHIP)

    def test_meander_declared_internal_wiring(self):
        comp = Component({"id": "M", "chipType": "meander", "ports": [{"id": "in"}, {"id": "out"}],
                          "resistance": 5e12, "internalConnections": [["in", "out"]]})
        graph = build_network_graph([comp], [])
        self.assertIn(SegmentKey.of("M_in", "M_out"), graph.segments)

    def test_t_junction_star_topology(self):
        graph = build_network_graph([tee("T", 2e12)], [])
        junction = internal_node_id("T")
        self.assertEqual(junction, "T_internal_junction")
        self.assertEqual(graph.nodes[junction].role, NodeRole.JUNCTION)
        self.assertEqual(len(graph.segments), 3)
        for port in ("T_a", "T_b", "T_c"):
            self.assertEqual(graph.segments[SegmentKey.of(port, junction)].resistance, 2e12)
        self.assertEqual(sorted(graph.adjacency[junction]), ["T_a", "T_b", "T_c"])
        self.assertNotIn(SegmentKey.of("T_a", "T_b"), graph.segments)

    def test_x_junction_star_not_mesh(self):
        graph = build_network_graph([cross("X", 1e12)], [])
        self.assertEqual(len(graph.segments), 4)
        self.assertTrue(all(internal_node_id("X") in key for key in graph.segments))

    def test_connection_adds_tubing_segment(self):
        graph = build_network_graph([pump("P", 100.0), outlet("O")],
                                    [tube("c1", "P", "out", "O", "in", 4e12)])
        segment = graph.segments[SegmentKey.of("P_out", "O_in")]
        self.assertEqual(segment.kind, SegmentKind.TUBING)
        self.assertEqual(segment.node1, "P_out")
        self.assertEqual(segment.node2, "O_in")
        self.assertEqual(segment.connection_ids, ["c1"])

    def test_unresolved_references_abort_and_are_listed(self):
        with self.assertRaises(UnresolvedReference) as ctx:
            build_network_graph([pump("P", 100.0), outlet("O")],
                                [tube("c1", "P", "nope", "O", "in", 1e12),
                                 tube("c2", "GHOST", "x", "O", "in", 1e12)])
        self.assertEqual(len(ctx.exception.references), 2)
        self.assertEqual(ctx.exception.code, DiagnosticCode.UNRESOLVED_REFERENCE)

    def test_unresolved_internal_wiring(self):
        comp = Component({"id": "S", "chipType": "straight", "ports": [{"id": "a"}, {"id": "b"}],
                          "resistance": 1e12, "internalConnections": [["a", "zz"]]})
        with self.assertRaises(UnresolvedReference):
            build_network_graph([comp], [])

    def test_invalid_resistance_excluded_but_adjacency_kept(self):
        graph = build_network_graph([pump("P", 100.0), outlet("O")],
                                    [tube("c1", "P", "out", "O", "in", 0.0)])
        self.assertEqual(graph.segments, {})
        self.assertIn("O_in", graph.adjacency["P_out"])
        self.assertIn("P_out", graph.adjacency["O_in"])
        self.assertIn(DiagnosticCode.INVALID_RESISTANCE, codes(graph.warnings))

    def test_non_finite_and_missing_resistance_rejected(self):
        comps = [straight("S1", math.inf), straight("S2", float("nan")),
                 Component({"id": "S3", "chipType": "straight", "ports": [{"id": "a"}, {"id": "b"}]})]
        graph = build_network_graph(comps, [])
        self.assertEqual(graph.segments, {})
        self.assertEqual(codes(graph.warnings).count(DiagnosticCode.INVALID_RESISTANCE), 3)

    def test_zero_port_component_ignored(self):
        comp = Component({"id": "E", "chipType": "straight", "ports": [], "resistance": 1e12})
        graph = build_network_graph([comp], [])
        self.assertEqual(graph.nodes, {})
        self.assertEqual(graph.warnings, [])

    def test_port_count_mismatch_warns(self):
        comp = Component({"id": "T", "chipType": "t-type", "ports": [{"id": "a"}, {"id": "b"}],
                          "perSegmentResistance": 1e12})
        graph = build_network_graph([comp], [])
        self.assertIn(DiagnosticCode.PORT_COUNT_MISMATCH, codes(graph.warnings))

    def test_duplicate_connections_combine_in_parallel(self):
        graph = build_network_graph([pump("P", 100.0), outlet("O")],
                                    [tube("c1", "P", "out", "O", "in", 2e12),
                                     tube("c2", "O", "in", "P", "out", 2e12)])
        segment = graph.segments[SegmentKey.of("P_out", "O_in")]
        self.assertAlmostEqual(segment.resistance, 1e12, delta=1.0)
        self.assertEqual(segment.connection_ids, ["c1", "c2"])
        self.assertIn(DiagnosticCode.DUPLICATE_SEGMENT, codes(graph.warnings))

    def test_self_loop_ignored(self):
        graph = build_network_graph([straight("S", 1e12)], [tube("c1", "S", "a", "S", "a", 1e12)])
        self.assertEqual(len(graph.segments), 1)
        self.assertIn(DiagnosticCode.SELF_LOOP, codes(graph.warnings))

    def test_connection_resistance_from_tubing_geometry(self):
        conn = Connection({"id": "c1", "fromComponentId": "P", "fromPortId": "out",
                           "toComponentId": "O", "toPortId": "in",
                           "lengthMeters": 0.2, "tubingTypeId": "narrow"})
        graph = GraphBuilder([pump("P", 100.0), outlet("O")], [conn],
                             tubing_types={"narrow": 0.000127}).build()
        segment = graph.segments[SegmentKey.of("P_out", "O_in")]
        self.assertAlmostEqual(segment.resistance, tubing_resistance(0.2, 0.000127, 1e-3),
                               delta=segment.resistance * 1e-12)

    def test_junction_resistance_from_half_channel_length(self):
        comp = Component({"id": "T", "chipType": "t-type", "ports": [{"id": "a"}, {"id": "b"}, {"id": "c"}],
                          "channelLengthM": 0.01, "channelWidthM": 100e-6, "channelDepthM": 100e-6})
        graph = build_network_graph([comp], [])
        expected = tubing_resistance(0.005, 50e-6, 1e-3)
        for segment in graph.segments.values():
            self.assertAlmostEqual(segment.resistance, expected, delta=expected * 1e-9)

    def test_same_builder_builds_twice_from_scratch(self):
        comps = [pump("P", 100.0), straight("S", 2e12), outlet("O")]
        conns = [tube("c1", "P", "out", "S", "a", 1e12), tube("c2", "S", "b", "O", "in", 1e12)]
        builder = GraphBuilder(comps, conns)
        first = builder.build()
        second = builder.build()
        self.assertIsNot(first, second)
        key = SegmentKey.of("S_a", "S_b")
        self.assertEqual(second.segments[key].resistance, 2e12)
        self.assertEqual(first.segments[key].resistance, 2e12)
        self.assertEqual(second.warnings, [])

    def test_port_named_like_junction_is_rejected(self):
        comp = Component({"id": "T", "chipType": "t-type",
                          "ports": [{"id": "a"}, {"id": "b"}, {"id": "internal_junction"}],
                          "perSegmentResistance": 1e12})
        with self.assertRaises(DuplicateNodeId) as ctx:
            build_network_graph([comp], [])
        self.assertEqual(ctx.exception.subject, "T_internal_junction")

    def test_ports_colliding_across_components_are_rejected(self):
        first = Component({"id": "A", "chipType": "straight", "ports": [{"id": "b_c"}, {"id": "x"}],
                           "resistance": 1e12})
        second = Component({"id": "A_b", "chipType": "straight", "ports": [{"id": "c"}, {"id": "y"}],
                            "resistance": 1e12})
        with self.assertRaises(DuplicateNodeId):
            build_network_graph([first, second], [])

    def test_rebuild_is_independent(self):
        comps = [pump("P", 100.0), outlet("O")]
        conns = [tube("c1", "P", "out", "O", "in", 1e12)]
        first = build_network_graph(comps, conns)
        second = build_network_graph(comps, conns)
        self.assertIsNot(first.nodes["P_out"], second.nodes["P_out"])
        self.assertEqual(list(first.segments), list(second.segments))


if __name__ == "__main__":
    unittest.main()
