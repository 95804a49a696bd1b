import logging
import math
from typing import Dict, Iterable, List, Optional

from ..constants import (
    DEFAULT_PUMP_PRESSURE_PA, DEFAULT_TUBE_INNER_RADIUS_M, DEFAULT_TUBING_TYPE_ID,
    JUNCTION_SEGMENT_LENGTH_FRACTION, OUTLET_PRESSURE_PA,
)
from .errors import Diagnostic, DiagnosticCode, DuplicateNodeId, InvalidResistance, UnresolvedReference
from .models import (
    ChipType, Component, Connection, Node, NodeRole, Segment, SegmentKey, SegmentKind,
    base_port_id, internal_node_id, port_node_id,
)
from .physics import Fluid, channel_resistance, tubing_resistance

logger = logging.getLogger(__name__)


class NetworkGraph:
    """
    网络拓扑类：节点、管段与邻接表。
    无效管段 (阻力非法) 不进入 segments，但其两端仍然写入 adjacency，
    以便求解器识别由此产生的孤立节点，而不是把它当作零阻力短路。
    """

    def __init__(self):
        self.nodes: Dict[str, Node] = {}
        self.segments: Dict[SegmentKey, Segment] = {}
        self.adjacency: Dict[str, List[str]] = {}
        self.warnings: List[Diagnostic] = []

    def add_node(self, node: Node) -> Node:
        existing = self.nodes.get(node.id)
        if existing is None:
            self.nodes[node.id] = node
            self.adjacency.setdefault(node.id, [])
            return node
        # 同一端口被更具体的角色再次登记时 (如泵端口)，升级原节点
        if node.role is not NodeRole.PORT:
            existing.role = node.role
            existing.known_pressure = node.known_pressure
        return existing

    def link(self, node_a: str, node_b: str):
        """双向记录拓扑，去重并保持插入顺序"""
        for u, v in ((node_a, node_b), (node_b, node_a)):
            neighbors = self.adjacency.setdefault(u, [])
            if v not in neighbors:
                neighbors.append(v)

    def incident_segments(self, node_id: str) -> List[Segment]:
        """节点的有效关联管段，按规范键排序以保证求和顺序确定"""
        found = []
        for neighbor in self.adjacency.get(node_id, []):
            segment = self.segments.get(SegmentKey.of(node_id, neighbor))
            if segment is not None:
                found.append(segment)
        found.sort(key=lambda s: s.key)
        return found

    def known_nodes(self) -> List[Node]:
        return [self.nodes[i] for i in sorted(self.nodes) if self.nodes[i].is_known]

    def unknown_nodes(self) -> List[Node]:
        return [self.nodes[i] for i in sorted(self.nodes) if not self.nodes[i].is_known]

    def nodes_with_role(self, role: NodeRole) -> List[Node]:
        return [n for n in self.nodes.values() if n.role is role]


class GraphBuilder:
    """
    将画布快照 (元件 + 管路) 转换为 NetworkGraph。
    - 每个端口对应一个节点；泵端口为已知压力节点，出口端口为 0 Pa 接地参考。
    - 直通/蛇形芯片：两端口之间一个内部管段。
    - T/X 芯片：生成一个内部汇合节点，各端口与其相连 (星形，而非端口两两相连)。
    - 每根管路连接在两个端口节点之间增加一个管段。
    """

    def __init__(self, components: Iterable[Component], connections: Iterable[Connection],
                 tubing_types: Optional[Dict[str, float]] = None,
                 default_pump_pressure: float = DEFAULT_PUMP_PRESSURE_PA,
                 fluid: Optional[Fluid] = None):
        self.components = list(components)
        self.connections = list(connections)
        # 软管类型 ID -> 内半径 (m)
        self.tubing_types = dict(tubing_types) if tubing_types else {
            DEFAULT_TUBING_TYPE_ID: DEFAULT_TUBE_INNER_RADIUS_M}
        self.default_pump_pressure = default_pump_pressure
        self.fluid = fluid or Fluid()

        self.graph = NetworkGraph()
        self._unresolved: List[str] = []

    def build(self) -> NetworkGraph:
        # 每次构建都从空图开始，不保留上一次的状态
        self.graph = NetworkGraph()
        self._unresolved = []
        logger.info("拓扑分析: 元件 %d 个, 管路 %d 根", len(self.components), len(self.connections))

        # 1. 登记端口节点 (含泵、出口的边界条件)
        for component in self.components:
            if not component.ports:
                logger.debug("忽略无端口元件 %s", component.id)
                continue
            self._check_port_count(component)
            self._register_ports(component)

        # 2. 元件内部管段
        for component in self.components:
            if not component.ports:
                continue
            if component.chip_type.is_two_port:
                self._add_two_port_segments(component)
            elif component.chip_type.is_junction:
                self._add_junction_star(component)

        # 3. 外部管路
        for conn in self.connections:
            self._add_connection(conn)

        if self._unresolved:
            logger.error("拓扑构建中止: %d 处无法解析的引用", len(self._unresolved))
            raise UnresolvedReference(self._unresolved)

        logger.info("拓扑构建完成: 节点 %d 个, 有效管段 %d 个, 警告 %d 条",
                    len(self.graph.nodes), len(self.graph.segments), len(self.graph.warnings))
        return self.graph

    # ------------------------------------------------------------------
    def _warn(self, code: DiagnosticCode, message: str, subject: Optional[str] = None):
        logger.warning(message)
        self.graph.warnings.append(Diagnostic(code, message, subject))

    def _check_port_count(self, component: Component):
        expected = component.chip_type.expected_ports
        if expected is not None and len(component.ports) != expected:
            self._warn(DiagnosticCode.PORT_COUNT_MISMATCH,
                       f"元件 {component.id} ({component.chip_type.value}) 端口数为 "
                       f"{len(component.ports)}，应为 {expected}", component.id)

    def _register_ports(self, component: Component):
        for port in component.ports:
            node_id = port_node_id(component.id, port.id)
            role = NodeRole.PORT
            pressure = None

            if component.chip_type is ChipType.PUMP:
                role = NodeRole.PUMP
                pressure = component.port_pressures.get(base_port_id(component.id, port.id))
                if pressure is None:
                    pressure = self.default_pump_pressure
                    self._warn(DiagnosticCode.DEFAULT_PUMP_PRESSURE,
                               f"泵 {component.id} 端口 {port.id} 未设定压力，使用默认值 {pressure} Pa",
                               node_id)
            elif component.chip_type is ChipType.OUTLET:
                role = NodeRole.OUTLET
                pressure = OUTLET_PRESSURE_PA

            if node_id in self.graph.nodes:
                raise DuplicateNodeId(f"元件 {component.id} 的端口 {port.id} 与已有节点 {node_id} 重名", node_id)
            self.graph.add_node(Node(node_id, role, pressure, component.id, port.id))

    def _resolve_port(self, component_id: str, port_id: str, context: str) -> Optional[str]:
        node_id = port_node_id(component_id, port_id)
        if node_id not in self.graph.nodes:
            self._unresolved.append(f"{context} -> {component_id}.{port_id}")
            return None
        return node_id

    def _two_port_resistance(self, component: Component) -> Optional[float]:
        if component.resistance is not None:
            return component.resistance
        return self._geometry_resistance(component, component.channel_length_m)

    def _junction_resistance(self, component: Component) -> Optional[float]:
        if component.per_segment_resistance is not None:
            return component.per_segment_resistance
        length = component.junction_segment_length_m
        if length is None and component.channel_length_m is not None:
            length = component.channel_length_m * JUNCTION_SEGMENT_LENGTH_FRACTION
        return self._geometry_resistance(component, length)

    def _geometry_resistance(self, component: Component, length_m: Optional[float]) -> Optional[float]:
        """由通道几何尺寸计算阻力；参数缺失返回 None，参数非法返回 inf"""
        dims = (length_m, component.channel_width_m, component.channel_depth_m)
        if any(d is None for d in dims):
            return None
        mu = component.viscosity_pa_s if component.viscosity_pa_s is not None else self.fluid.mu
        try:
            return channel_resistance(*dims, mu)
        except InvalidResistance as e:
            logger.warning("元件 %s 几何参数非法: %s", component.id, e)
            return math.inf

    def _add_two_port_segments(self, component: Component):
        pairs = list(component.internal_connections)
        if not pairs:
            if len(component.ports) < 2:
                return
            pairs = [(component.ports[0].id, component.ports[1].id)]

        resistance = self._two_port_resistance(component)
        for port_a, port_b in pairs:
            context = f"元件 {component.id} 内部连线"
            node_a = self._resolve_port(component.id, port_a, context)
            node_b = self._resolve_port(component.id, port_b, context)
            if node_a is None or node_b is None:
                continue
            self._add_segment(node_a, node_b, resistance, SegmentKind.INTERNAL_CHIP,
                              component_id=component.id)

    def _add_junction_star(self, component: Component):
        # 内部连线声明仅做引用校验，物理模型始终为星形
        for port_a, port_b in component.internal_connections:
            for port_id in (port_a, port_b):
                self._resolve_port(component.id, port_id, f"元件 {component.id} 内部连线")

        junction_id = internal_node_id(component.id)
        if junction_id in self.graph.nodes:
            raise DuplicateNodeId(f"元件 {component.id} 的内部汇合点与端口节点 {junction_id} 重名", junction_id)
        self.graph.add_node(Node(junction_id, NodeRole.JUNCTION, None, component.id))
        resistance = self._junction_resistance(component)

        for port in component.ports:
            node_id = port_node_id(component.id, port.id)
            self._add_segment(node_id, junction_id, resistance, SegmentKind.INTERNAL_CHIP,
                              component_id=component.id)

    def _connection_resistance(self, conn: Connection) -> Optional[float]:
        if conn.resistance is not None:
            return conn.resistance
        if conn.length_m is None:
            return None
        radius = conn.inner_radius_m
        if radius is None:
            radius = self.tubing_types.get(conn.tubing_type_id or DEFAULT_TUBING_TYPE_ID)
            if radius is None:
                logger.warning("管路 %s 的软管类型 %s 未在目录中找到", conn.id, conn.tubing_type_id)
                return None
        try:
            return tubing_resistance(conn.length_m, radius, self.fluid.mu)
        except InvalidResistance as e:
            logger.warning("管路 %s 几何参数非法: %s", conn.id, e)
            return math.inf

    def _add_connection(self, conn: Connection):
        context = f"管路 {conn.id}"
        from_id = self._resolve_port(conn.from_component_id, conn.from_port_id, context)
        to_id = self._resolve_port(conn.to_component_id, conn.to_port_id, context)
        if from_id is None or to_id is None:
            return
        self._add_segment(from_id, to_id, self._connection_resistance(conn), SegmentKind.TUBING,
                          connection_id=conn.id)

    def _add_segment(self, node1: str, node2: str, resistance: Optional[float], kind: SegmentKind,
                     component_id: Optional[str] = None, connection_id: Optional[str] = None):
        if node1 == node2:
            self._warn(DiagnosticCode.SELF_LOOP,
                       f"管段 {node1} 首尾相接，已忽略", connection_id or component_id)
            return

        # 无论阻力是否有效，邻接关系都要保留
        self.graph.link(node1, node2)
        segment = Segment(node1, node2, resistance, kind, component_id, connection_id)

        if not segment.is_valid:
            self._warn(DiagnosticCode.INVALID_RESISTANCE,
                       f"管段 {segment.key.label} 阻力非法 ({resistance})，已从求解中排除",
                       segment.key.label)
            return

        existing = self.graph.segments.get(segment.key)
        if existing is not None:
            # 同一对节点之间的多根管段按并联合并
            combined = 1.0 / (1.0 / existing.resistance + 1.0 / resistance)
            self._warn(DiagnosticCode.DUPLICATE_SEGMENT,
                       f"管段 {segment.key.label} 重复，按并联合并: "
                       f"{existing.resistance:.4e} // {resistance:.4e} -> {combined:.4e}",
                       segment.key.label)
            existing.resistance = combined
            existing.connection_ids.extend(segment.connection_ids)
            return

        self.graph.segments[segment.key] = segment
        logger.debug("[链路] %s: %s -> %s (R=%.3e, %s)",
                     segment.key.label, node1, node2, resistance, kind.value)


def build_network_graph(components: Iterable[Component], connections: Iterable[Connection],
                        **options) -> NetworkGraph:
    return GraphBuilder(components, connections, **options).build()
