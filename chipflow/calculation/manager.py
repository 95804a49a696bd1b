import logging
import os
from collections import deque
from typing import Dict, Iterable, List, Optional

from ..constants import DEFAULT_PUMP_PRESSURE_PA, M3S_TO_ULMIN, PASCAL_TO_MBAR
from ..datasystem.catalog_store import CatalogStore
from ..design.snapshot_store import SnapshotStore
from .errors import Diagnostic, DiagnosticCode, EmptyDesign, InvalidSnapshot, NetworkError
from .flow import FlowCalculator
from .linear_solver import LinearSolver, SolverSettings
from .models import Component, Connection, NodeRole, SimulationResults
from .physics import Fluid
from .topology import GraphBuilder, NetworkGraph

logger = logging.getLogger(__name__)


def simulate(components: Iterable[Component], connections: Iterable[Connection],
             tubing_types: Optional[Dict[str, float]] = None,
             default_pump_pressure: float = DEFAULT_PUMP_PRESSURE_PA,
             fluid: Optional[Fluid] = None,
             solver_settings: Optional[SolverSettings] = None) -> SimulationResults:
    """
    一次完整仿真：建图 -> 求压力 -> 求流量，同步执行。
    中止类错误返回只含 errors 的空结果；可恢复问题返回部分结果与 warnings。
    """
    components = list(components)
    connections = list(connections)
    warnings: List[Diagnostic] = []

    try:
        if not components:
            raise EmptyDesign("画布上没有元件，请先添加元件")

        # 1. 构建拓扑
        logger.info("[1/3] 拓扑分析: 正在建立网络连接图...")
        graph = GraphBuilder(components, connections, tubing_types=tubing_types,
                             default_pump_pressure=default_pump_pressure, fluid=fluid).build()
        warnings.extend(graph.warnings)
        if not graph.nodes:
            raise EmptyDesign("设计为空或无有效端口，无法仿真")

        if not _has_boundary(graph):
            message = "无法仿真: 请至少添加一个泵或出口"
            logger.warning(message)
            warnings.append(Diagnostic(DiagnosticCode.NO_BOUNDARY, message))
            return SimulationResults(warnings=warnings)

        _log_isolated_nodes(graph)
        if not _pump_outlet_path_exists(graph):
            message = "任何泵与出口之间都没有连通路径，结果可能只反映局部"
            logger.warning(message)
            warnings.append(Diagnostic(DiagnosticCode.NO_PUMP_OUTLET_PATH, message))

        # 2. 求解压力
        logger.info("[2/3] 进入求解引擎: 节点分析法 (稠密 LU)...")
        solver = LinearSolver(graph, solver_settings)
        pressures = solver.solve()
        warnings.extend(solver.warnings)

        # 3. 计算流量
        logger.info("[3/3] 流量计算: 有效管段 %d 个", len(graph.segments))
        calculator = FlowCalculator(graph, pressures)
        flows = calculator.calculate()
        warnings.extend(calculator.warnings)
    except NetworkError as e:
        logger.error("[-] 仿真中止: %s", e.message)
        return SimulationResults(warnings=warnings, errors=[e.diagnostic])

    logger.info("[+] 计算完成: 节点 %d 个, 管段 %d 个, 警告 %d 条",
                len(pressures), len(flows), len(warnings))
    return SimulationResults(pressures, flows, warnings)


def _has_boundary(graph: NetworkGraph) -> bool:
    return any(n.is_known for n in graph.nodes.values())


def _log_isolated_nodes(graph: NetworkGraph):
    # 未连接的泵端口属于有意闲置，不计入
    isolated = [node_id for node_id, neighbors in graph.adjacency.items()
                if not neighbors and graph.nodes[node_id].role is not NodeRole.PUMP]
    if isolated:
        logger.warning("发现 %d 个未连接到网络的孤立节点: %s", len(isolated), ", ".join(isolated))


def _pump_outlet_path_exists(graph: NetworkGraph) -> bool:
    """沿有效管段检查是否存在任一 泵 -> 出口 的路径；缺少泵或出口时不做判断"""
    pumps = [n.id for n in graph.nodes_with_role(NodeRole.PUMP)]
    outlets = {n.id for n in graph.nodes_with_role(NodeRole.OUTLET)}
    if not pumps or not outlets:
        return True

    visited = set(pumps)
    queue = deque(pumps)
    while queue:
        current = queue.popleft()
        if current in outlets:
            return True
        for segment in graph.incident_segments(current):
            neighbor = segment.key.other(current)
            if neighbor not in visited:
                visited.add(neighbor)
                queue.append(neighbor)
    return False


class CalculationManager:
    """从 JSON 快照读取画布数据并执行仿真"""

    def __init__(self, json_path: str, catalog: Optional[CatalogStore] = None):
        self.json_path = json_path
        self.catalog = catalog

    def run(self) -> SimulationResults:
        """主入口"""
        logger.info("仿真任务启动: 正在从 JSON 快照同步数据 %s", self.json_path)
        if not os.path.exists(self.json_path):
            message = f"找不到快照文件 {self.json_path}"
            logger.error(message)
            return SimulationResults(errors=[Diagnostic(DiagnosticCode.EMPTY_DESIGN, message)])

        try:
            components, connections, options = self._load_inputs()
        except (ValueError, TypeError, AttributeError) as e:
            logger.error("[-] 快照解析失败: %s", e, exc_info=True)
            error = InvalidSnapshot(f"快照内容无法解析: {e}")
            return SimulationResults(errors=[error.diagnostic])

        return simulate(components, connections, **options)

    def _load_inputs(self):
        """读取快照并解析设置；字段非法时抛出 ValueError / TypeError"""
        store = SnapshotStore(self.json_path)
        components = store.components()
        connections = store.connections()
        settings = store.settings
        logger.info("数据加载成功: 元件 %d 个, 管路 %d 根", len(components), len(connections))

        fluid = self._resolve_fluid(settings)
        logger.info("注入流体物性: %s, mu=%.3e Pa·s", fluid.name, fluid.mu)

        solver_settings = SolverSettings()
        if settings.get("diagonalEpsilon") is not None:
            solver_settings.diagonal_epsilon = float(settings["diagonalEpsilon"])

        default_pressure = settings.get("defaultPumpPressure")
        options = {
            "tubing_types": self.catalog.tubing_types() if self.catalog else None,
            "default_pump_pressure": DEFAULT_PUMP_PRESSURE_PA if default_pressure is None else float(default_pressure),
            "fluid": fluid,
            "solver_settings": solver_settings,
        }
        return components, connections, options

    def _resolve_fluid(self, settings: Dict) -> Fluid:
        name = settings.get("fluid", Fluid.DEFAULT_NAME)
        fluid = self.catalog.fluid(name) if self.catalog else Fluid(name)
        if settings.get("viscosityPaS") is not None:
            fluid.mu = float(settings["viscosityPaS"])
        return fluid


def format_summary(results: SimulationResults) -> str:
    """终端摘要 (SI 单位 / 常用单位)"""
    lines = ["", "--- 计算结果摘要 ---"]
    if results.errors:
        lines.append("仿真失败:")
        lines.extend(f"  [{e.code.value}] {e.message}" for e in results.errors)

    if results.node_pressures:
        lines.append(f"{'节点ID':<32} | {'压力 (Pa)':>14} | {'压力 (mbar)':>12}")
        lines.append("-" * 66)
        for node_id, p in results.node_pressures.items():
            lines.append(f"{node_id:<32} | {p:14.3f} | {p * PASCAL_TO_MBAR:12.4f}")
        lines.append("-" * 66)

    if results.segment_flows:
        lines.append(f"{'管段':<48} | {'流量 (m³/s)':>12} | {'流量 (µL/min)':>14} | 方向")
        lines.append("-" * 100)
        for key, f in results.segment_flows.items():
            lines.append(f"{key.label:<48} | {f.flow:12.4e} | {abs(f.flow) * M3S_TO_ULMIN:14.4f} | "
                         f"{f.from_node} -> {f.to_node}")
        lines.append("-" * 100)

    if results.warnings:
        lines.append(f"警告 {len(results.warnings)} 条:")
        lines.extend(f"  [{w.code.value}] {w.message}" for w in results.warnings)
    lines.append("")
    return "\n".join(lines)
