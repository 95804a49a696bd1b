"""
泵可达性分析 (仿真前高亮)。

纯拓扑的启发式模型，与 topology.NetworkGraph 的物理模型相互独立：
- 不关心阻力是否有效，只看连线关系；
- 所有管路和芯片内部连线视为无向边，唯一的例外是出口：
  出口只作为汇，不能从出口端口继续向外遍历；
- 从所有泵端口同时出发做广度优先搜索，经过的管路和内部管段标记为可达。
复杂度 O(节点数 + 边数)，每次增删管路时同步重算。
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Set

from .models import (
    ChipType, Component, Connection, SegmentKey, internal_node_id, port_node_id,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReachEdge:
    neighbor: str
    key: SegmentKey
    connection_id: Optional[str] = None
    component_id: Optional[str] = None


class ReachabilityGraph:
    """可达性分析专用的邻接表 (有向：出口端口没有出边)"""

    def __init__(self, components: Iterable[Component], connections: Iterable[Connection]):
        self.adjacency: Dict[str, List[ReachEdge]] = {}
        self.pump_ports: Set[str] = set()
        self.outlet_ports: Set[str] = set()
        self._build(list(components), list(connections))

    def _build(self, components: List[Component], connections: List[Connection]):
        for component in components:
            for port in component.ports:
                node_id = port_node_id(component.id, port.id)
                self.adjacency.setdefault(node_id, [])
                if component.chip_type is ChipType.PUMP:
                    self.pump_ports.add(node_id)
                elif component.chip_type is ChipType.OUTLET:
                    self.outlet_ports.add(node_id)

        for component in components:
            if component.chip_type.is_two_port:
                self._add_two_port_wiring(component)
            elif component.chip_type.is_junction:
                self._add_junction_arms(component)

        for conn in connections:
            u, v = conn.from_node_id, conn.to_node_id
            if u not in self.adjacency or v not in self.adjacency:
                logger.debug("可达性分析忽略悬空管路 %s", conn.id)
                continue
            self._add_edge(u, v, SegmentKey.of(u, v), connection_id=conn.id)

    def _add_two_port_wiring(self, component: Component):
        pairs = list(component.internal_connections)
        if not pairs and len(component.ports) >= 2:
            pairs = [(component.ports[0].id, component.ports[1].id)]
        for port_a, port_b in pairs:
            u = port_node_id(component.id, port_a)
            v = port_node_id(component.id, port_b)
            if u in self.adjacency and v in self.adjacency:
                self._add_edge(u, v, SegmentKey.of(u, v), component_id=component.id)

    def _add_junction_arms(self, component: Component):
        # 所有端口经内部汇合点互通：每个端口与汇合点之间一条臂
        junction = internal_node_id(component.id)
        self.adjacency.setdefault(junction, [])
        for port in component.ports:
            u = port_node_id(component.id, port.id)
            self._add_edge(u, junction, SegmentKey.of(u, junction), component_id=component.id)

    def _add_edge(self, u: str, v: str, key: SegmentKey,
                  connection_id: Optional[str] = None, component_id: Optional[str] = None):
        # 出口是汇：只允许流入，不允许从出口流出
        if u not in self.outlet_ports:
            self.adjacency[u].append(ReachEdge(v, key, connection_id, component_id))
        if v not in self.outlet_ports:
            self.adjacency[v].append(ReachEdge(u, key, connection_id, component_id))


@dataclass(frozen=True)
class ReachabilityResult:
    segments: FrozenSet[SegmentKey] = frozenset()
    connections: FrozenSet[str] = frozenset()
    components: FrozenSet[str] = frozenset()
    visited: FrozenSet[str] = frozenset()

    def is_reachable(self, key: SegmentKey) -> bool:
        return key in self.segments


class ReachabilityAnalyzer:
    """多源 BFS：从所有泵端口出发，标记途经的管路与芯片内部管段"""

    def __init__(self, components: Iterable[Component], connections: Iterable[Connection]):
        self.graph = ReachabilityGraph(components, connections)

    def analyze(self) -> ReachabilityResult:
        if not self.graph.pump_ports:
            logger.info("没有泵端口，无可达元素")
            return ReachabilityResult()

        queue = deque(sorted(self.graph.pump_ports))
        visited = set(queue)
        segments, connections, components = set(), set(), set()

        while queue:
            current = queue.popleft()
            for edge in self.graph.adjacency.get(current, []):
                segments.add(edge.key)
                if edge.connection_id is not None:
                    connections.add(edge.connection_id)
                if edge.component_id is not None:
                    components.add(edge.component_id)
                if edge.neighbor not in visited:
                    visited.add(edge.neighbor)
                    queue.append(edge.neighbor)

        logger.info("可达性分析: 从 %d 个泵端口出发, 可达管段 %d 个",
                    len(self.graph.pump_ports), len(segments))
        return ReachabilityResult(frozenset(segments), frozenset(connections),
                                  frozenset(components), frozenset(visited))


def find_reachable(components: Iterable[Component], connections: Iterable[Connection]) -> ReachabilityResult:
    return ReachabilityAnalyzer(components, connections).analyze()


@dataclass(frozen=True)
class HighlightUpdate:
    result: ReachabilityResult
    highlighted: FrozenSet[SegmentKey] = field(default_factory=frozenset)
    cleared: FrozenSet[SegmentKey] = field(default_factory=frozenset)


class HighlightTracker:
    """
    保存当前高亮状态。增删管路或元件时重算可达性，
    返回新增高亮与需要清除的管段；仅移动元件不改变连通性，不重算。
    """

    def __init__(self, components: Iterable[Component] = (), connections: Iterable[Connection] = ()):
        self.components: Dict[str, Component] = {c.id: c for c in components}
        self.connections: Dict[str, Connection] = {c.id: c for c in connections}
        self.current = ReachabilityResult()
        self.refresh()

    def refresh(self) -> HighlightUpdate:
        result = find_reachable(self.components.values(), self.connections.values())
        update = HighlightUpdate(result,
                                 highlighted=result.segments - self.current.segments,
                                 cleared=self.current.segments - result.segments)
        self.current = result
        return update

    def add_connection(self, connection: Connection) -> HighlightUpdate:
        self.connections[connection.id] = connection
        return self.refresh()

    def remove_connection(self, connection_id: str) -> HighlightUpdate:
        self.connections.pop(connection_id, None)
        return self.refresh()

    def add_component(self, component: Component) -> HighlightUpdate:
        self.components[component.id] = component
        return self.refresh()

    def remove_component(self, component_id: str) -> HighlightUpdate:
        """删除元件时一并删除与其相连的管路"""
        self.components.pop(component_id, None)
        self.connections = {
            cid: c for cid, c in self.connections.items()
            if component_id not in (c.from_component_id, c.to_component_id)
        }
        return self.refresh()

    def move_component(self, component_id: str) -> HighlightUpdate:
        return HighlightUpdate(self.current)

    @property
    def highlighted(self) -> FrozenSet[SegmentKey]:
        return self.current.segments

