import logging
import math
from typing import Dict, List, Optional, Tuple

from .errors import Diagnostic, DiagnosticCode
from .models import SegmentFlow, SegmentKey
from .topology import NetworkGraph

logger = logging.getLogger(__name__)


class FlowCalculator:
    """
    由节点压力计算各管段流量：Q = (p1 - p2) / R (m³/s)，正值表示 node1 -> node2。
    压力缺失或非有限时该管段流量记为 NaN 并给出警告，管段本身保留在结果中。
    """

    def __init__(self, graph: NetworkGraph, pressures: Dict[str, float]):
        self.graph = graph
        self.pressures = pressures
        self.warnings: List[Diagnostic] = []

    def calculate(self) -> Dict[SegmentKey, SegmentFlow]:
        flows = {}
        for key in sorted(self.graph.segments):
            segment = self.graph.segments[key]
            q = self._segment_flow(key, segment.node1, segment.node2, segment.resistance)
            if math.isnan(q) or q >= 0:
                from_node, to_node = segment.node1, segment.node2
            else:
                from_node, to_node = segment.node2, segment.node1
            flows[key] = SegmentFlow(q, from_node, to_node, segment.resistance)
        return flows

    def _segment_flow(self, key: SegmentKey, node1: str, node2: str, resistance: float) -> float:
        p1 = self.pressures.get(node1)
        p2 = self.pressures.get(node2)

        if not _finite(p1) or not _finite(p2):
            return self._nan(DiagnosticCode.NON_FINITE_PRESSURE,
                             f"管段 {key.label} 端点压力缺失或非有限 (P1={p1}, P2={p2})，流量记为 NaN", key)

        # 建图阶段已排除零阻力管段，这里只做兜底
        if resistance == 0:
            return self._nan(DiagnosticCode.ZERO_RESISTANCE,
                             f"管段 {key.label} 阻力为 0，流量无法确定，记为 NaN", key)

        q = (p1 - p2) / resistance
        if not math.isfinite(q):
            return self._nan(DiagnosticCode.NON_FINITE_FLOW,
                             f"管段 {key.label} 流量计算结果非有限 ({q})，记为 NaN", key)
        return q

    def _nan(self, code: DiagnosticCode, message: str, key: SegmentKey) -> float:
        logger.warning(message)
        self.warnings.append(Diagnostic(code, message, key.label))
        return math.nan


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def calculate_flows(graph: NetworkGraph, pressures: Dict[str, float]) -> Tuple[Dict[SegmentKey, SegmentFlow], List[Diagnostic]]:
    calculator = FlowCalculator(graph, pressures)
    return calculator.calculate(), calculator.warnings
