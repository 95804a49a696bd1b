import logging
import math
import warnings
from collections import deque
from typing import Dict, List, Set, Tuple

import numpy as np
from scipy.linalg import LinAlgError, LinAlgWarning, lu_factor, lu_solve

from .errors import Diagnostic, DiagnosticCode, NoConnections, SingularNetwork
from .topology import NetworkGraph

logger = logging.getLogger(__name__)


class SolverSettings:
    """求解器配置"""

    def __init__(self, diagonal_epsilon: float = float(np.finfo(float).tiny),
                 imaginary_tolerance: float = 1e-9):
        self.diagonal_epsilon = diagonal_epsilon        # 对角元判零阈值
        self.imaginary_tolerance = imaginary_tolerance  # 复数解虚部容差


class LinearSolver:
    """
    节点分析法 (Nodal Analysis) 求解器，与直流电路分析同构：
    压力 <-> 电压, 流量 <-> 电流, 水力阻力 <-> 电阻。

    对每个未知压力节点 i 列基尔霍夫电流定律方程：
        Σ (p_i - p_j) / R_ij = 0
    组装为 A·x = B 后用稠密 LU 分解求解。网络规模为几十个节点，稠密矩阵足够。
    """

    def __init__(self, graph: NetworkGraph, settings: SolverSettings = None):
        self.graph = graph
        self.settings = settings or SolverSettings()
        self.warnings: List[Diagnostic] = []

        # 未知节点按 ID 字典序编号，保证同一拓扑得到逐位相同的结果
        self.unknown_ids: List[str] = [n.id for n in graph.unknown_nodes()]
        self.index: Dict[str, int] = {node_id: i for i, node_id in enumerate(self.unknown_ids)}

    def solve(self) -> Dict[str, float]:
        """返回 节点ID -> 压力 (Pa)；中止类错误以异常抛出"""
        pressures = self._known_pressures()

        if not self.unknown_ids:
            logger.info("无未知压力节点，直接返回边界压力")
            return pressures

        if not self.graph.segments:
            raise NoConnections(f"存在 {len(self.unknown_ids)} 个未知压力节点，但网络中没有任何有效管段")

        logger.info("求解器启动: 未知节点 %d 个, 已知节点 %d 个, 有效管段 %d 个",
                    len(self.unknown_ids), len(pressures), len(self.graph.segments))

        A, B = self._assemble_system()
        self._check_diagonal(A)
        x = self._lu_solve(A, B)

        for i, node_id in enumerate(self.unknown_ids):
            pressures[node_id] = self._checked_value(node_id, x[i])

        return {node_id: pressures[node_id] for node_id in sorted(pressures)}

    def _known_pressures(self) -> Dict[str, float]:
        return {n.id: float(n.known_pressure) for n in self.graph.known_nodes()}

    def _assemble_system(self) -> Tuple[np.ndarray, np.ndarray]:
        """组装 A·x = B"""
        n = len(self.unknown_ids)
        A = np.zeros((n, n))
        B = np.zeros(n)
        floating = self._floating_nodes()

        for i, node_id in enumerate(self.unknown_ids):
            segments = self.graph.incident_segments(node_id)
            if not segments or node_id in floating:
                # 孤立节点：强制 p_i = 0，避免矩阵奇异
                A[i, i] = 1.0
                B[i] = 0.0
                if not segments:
                    message = f"节点 {node_id} 没有任何有效管段相连，压力置为 0 Pa"
                else:
                    message = f"节点 {node_id} 所在子网没有泵或出口，压力置为 0 Pa"
                logger.warning(message)
                self.warnings.append(Diagnostic(DiagnosticCode.ISOLATED_NODE, message, node_id))
                continue

            for segment in segments:
                g = 1.0 / segment.resistance
                other = self.graph.nodes[segment.key.other(node_id)]
                A[i, i] += g
                if other.is_known:
                    B[i] += g * other.known_pressure
                else:
                    A[i, self.index[other.id]] -= g

        return A, B

    def _floating_nodes(self) -> Set[str]:
        """经有效管段无法到达任何已知压力节点的未知节点 (悬空子网)"""
        reached = set()
        queue = deque(n.id for n in self.graph.known_nodes())
        reached.update(queue)
        while queue:
            current = queue.popleft()
            for segment in self.graph.incident_segments(current):
                neighbor = segment.key.other(current)
                if neighbor not in reached:
                    reached.add(neighbor)
                    queue.append(neighbor)
        return {node_id for node_id in self.unknown_ids if node_id not in reached}

    def _check_diagonal(self, A: np.ndarray):
        for i, node_id in enumerate(self.unknown_ids):
            if not abs(A[i, i]) > self.settings.diagonal_epsilon:
                raise SingularNetwork(f"节点 {node_id} 的对角元接近 0，矩阵奇异", node_id)

    def _lu_solve(self, A: np.ndarray, B: np.ndarray) -> np.ndarray:
        try:
            with warnings.catch_warnings():
                # LU 分解遇到零主元时 scipy 只给出警告，这里升级为异常
                warnings.simplefilter("error", LinAlgWarning)
                lu, piv = lu_factor(A, check_finite=True)
                if np.any(np.diag(lu) == 0):
                    raise LinAlgError("LU 分解出现零主元")
                # B 中的非有限值逐节点在 _checked_value 中处理
                return lu_solve((lu, piv), B, check_finite=False)
        except (LinAlgError, LinAlgWarning, ValueError) as e:
            logger.error("矩阵求解失败 (检查拓扑孤岛): %s", e)
            raise SingularNetwork(f"网络矩阵求解失败: {e}") from e

    def _checked_value(self, node_id: str, value) -> float:
        """复数或非有限解只影响该节点 (记为 NaN)，其余节点继续"""
        if isinstance(value, complex) or np.iscomplexobj(value):
            value = complex(value)
            if abs(value.imag) > self.settings.imaginary_tolerance:
                return self._numerical_error(node_id, f"节点 {node_id} 压力解为复数 {value}")
            value = value.real

        value = float(value)
        if not math.isfinite(value):
            return self._numerical_error(node_id, f"节点 {node_id} 压力解非有限值 {value}")
        return value

    def _numerical_error(self, node_id: str, message: str) -> float:
        logger.warning(message)
        self.warnings.append(Diagnostic(DiagnosticCode.SOLVER_NUMERICAL_ERROR, message, node_id))
        return math.nan


def solve_pressures(graph: NetworkGraph, settings: SolverSettings = None) -> Tuple[Dict[str, float], List[Diagnostic]]:
    solver = LinearSolver(graph, settings)
    pressures = solver.solve()
    return pressures, solver.warnings
