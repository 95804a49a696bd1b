from chipflow.calculation.models import Component, Connection, Node, NodeRole, Segment, SegmentKind
from chipflow.calculation.topology import NetworkGraph


def pump(cid, pressure=None, ports=("out",)):
    data = {"id": cid, "chipType": "pump", "ports": [{"id": p} for p in ports]}
    if pressure is not None:
        data["portPressures"] = {p: pressure for p in ports}
    return Component(data)


def outlet(cid):
    return Component({"id": cid, "chipType": "outlet", "ports": [{"id": "in"}]})


def straight(cid, resistance, chip_type="straight"):
    return Component({"id": cid, "chipType": chip_type, "ports": [{"id": "a"}, {"id": "b"}],
                      "resistance": resistance})


def tee(cid, per_segment, ports=("a", "b", "c"), chip_type="t-type"):
    return Component({"id": cid, "chipType": chip_type, "ports": [{"id": p} for p in ports],
                      "perSegmentResistance": per_segment})


def cross(cid, per_segment):
    return tee(cid, per_segment, ports=("a", "b", "c", "d"), chip_type="x-type")


def tube(conn_id, from_comp, from_port, to_comp, to_port, resistance):
    return Connection({"id": conn_id,
                       "fromComponentId": from_comp, "fromPortId": from_port,
                       "toComponentId": to_comp, "toPortId": to_port,
                       "resistance": resistance})


def close(test, value, expected, rel=1e-9):
    test.assertAlmostEqual(value, expected, delta=abs(expected) * rel or 1e-12)


def manual_tee(p, r):
    """端口直接作为边界条件的 T 型星形网络"""
    graph = NetworkGraph()
    graph.add_node(Node("A", NodeRole.PUMP, p))
    graph.add_node(Node("B", NodeRole.OUTLET, 0.0))
    graph.add_node(Node("C", NodeRole.OUTLET, 0.0))
    graph.add_node(Node("J", NodeRole.JUNCTION))
    for port in ("A", "B", "C"):
        segment = Segment(port, "J", r, SegmentKind.INTERNAL_CHIP, component_id="T")
        graph.link(port, "J")
        graph.segments[segment.key] = segment
    return graph
