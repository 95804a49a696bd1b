import math
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..constants import INTERNAL_JUNCTION_SUFFIX, SEGMENT_LABEL_SEPARATOR
from .errors import Diagnostic


def _pick(data: dict, *keys, default=None):
    """按顺序读取第一个存在的键 (画布层使用 camelCase，脚本层使用 snake_case)"""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


class ChipType(Enum):
    STRAIGHT = "straight"
    MEANDER = "meander"
    T_JUNCTION = "t-type"
    X_JUNCTION = "x-type"
    PUMP = "pump"
    OUTLET = "outlet"

    @classmethod
    def parse(cls, value) -> "ChipType":
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if text.lower() == member.value or text.upper() == member.name:
                return member
        raise ValueError(f"未知的芯片类型: {value}")

    @property
    def is_two_port(self) -> bool:
        return self in (ChipType.STRAIGHT, ChipType.MEANDER)

    @property
    def is_junction(self) -> bool:
        return self in (ChipType.T_JUNCTION, ChipType.X_JUNCTION)

    @property
    def expected_ports(self) -> Optional[int]:
        return {
            ChipType.STRAIGHT: 2,
            ChipType.MEANDER: 2,
            ChipType.T_JUNCTION: 3,
            ChipType.X_JUNCTION: 4,
            ChipType.OUTLET: 1,
        }.get(self)


class NodeRole(Enum):
    PUMP = "pump"
    OUTLET = "outlet"
    JUNCTION = "junction"
    PORT = "port"

    @property
    def has_known_pressure(self) -> bool:
        return self in (NodeRole.PUMP, NodeRole.OUTLET)


class SegmentKind(Enum):
    TUBING = "tubing"
    INTERNAL_CHIP = "internal_chip_path"


def port_node_id(component_id: str, port_id: str) -> str:
    """
    端口节点 ID 统一为 "<元件ID>_<端口ID>"。
    画布层有时传入已带元件前缀的端口 ID，此时不再重复加前缀。
    """
    prefix = f"{component_id}_"
    base = port_id[len(prefix):] if port_id.startswith(prefix) else port_id
    return sys.intern(prefix + base)


def base_port_id(component_id: str, port_id: str) -> str:
    prefix = f"{component_id}_"
    return port_id[len(prefix):] if port_id.startswith(prefix) else port_id


def internal_node_id(component_id: str) -> str:
    """T/X 芯片内部汇合点的节点 ID"""
    return sys.intern(f"{component_id}{INTERNAL_JUNCTION_SUFFIX}")


class Port:
    def __init__(self, data: dict):
        self.id = str(data.get("id", ""))
        self.role = data.get("role", "port")


class Component:
    """
    元件快照：由画布层提供，计算引擎只读。
    阻力优先取显式值；缺省时根据通道几何尺寸在建图阶段计算。
    """

    def __init__(self, data: dict):
        self.id = str(data.get("id", ""))
        self.chip_type = ChipType.parse(_pick(data, "chipType", "chip_type", "type"))
        self.ports: Tuple[Port, ...] = tuple(
            Port(p) if isinstance(p, dict) else Port({"id": p})
            for p in data.get("ports", [])
        )

        # 阻力参数 (Pa·s/m³)
        self.resistance = _optional_float(_pick(data, "resistance"))
        self.per_segment_resistance = _optional_float(
            _pick(data, "perSegmentResistance", "per_segment_resistance"))

        # 内部连线：[[portA, portB], ...]，直通/蛇形芯片缺省为前两个端口
        wiring = _pick(data, "internalConnections", "internal_connections", default=[])
        self.internal_connections: Tuple[Tuple[str, str], ...] = tuple(
            (str(pair[0]), str(pair[1])) for pair in wiring if len(pair) == 2
        )

        # 泵端口压力 (Pa)，键为不带元件前缀的端口 ID
        pressures = _pick(data, "portPressures", "port_pressures", default={}) or {}
        self.port_pressures: Dict[str, float] = {
            base_port_id(self.id, str(k)): float(v) for k, v in pressures.items() if v is not None
        }

        # 几何参数 (m)，用于推算阻力
        self.channel_length_m = _optional_float(_pick(data, "channelLengthM", "channel_length_m"))
        self.channel_width_m = _optional_float(_pick(data, "channelWidthM", "channel_width_m"))
        self.channel_depth_m = _optional_float(_pick(data, "channelDepthM", "channel_depth_m"))
        self.junction_segment_length_m = _optional_float(
            _pick(data, "junctionSegmentLengthM", "junction_segment_length_m"))
        self.viscosity_pa_s = _optional_float(_pick(data, "viscosityPaS", "viscosity_pa_s"))

    @property
    def port_ids(self) -> List[str]:
        return [p.id for p in self.ports]


class Connection:
    """
    管路连接快照：连接两个元件端口的软管。
    """

    def __init__(self, data: dict):
        self.id = str(data.get("id", ""))
        self.from_component_id = str(_pick(data, "fromComponentId", "from_component_id", "fromItemId", default=""))
        self.from_port_id = str(_pick(data, "fromPortId", "from_port_id", default=""))
        self.to_component_id = str(_pick(data, "toComponentId", "to_component_id", "toItemId", default=""))
        self.to_port_id = str(_pick(data, "toPortId", "to_port_id", default=""))

        self.resistance = _optional_float(_pick(data, "resistance"))
        # 几何参数：未给出阻力时用 Hagen-Poiseuille 计算
        self.length_m = _optional_float(_pick(data, "lengthMeters", "length_m"))
        self.inner_radius_m = _optional_float(_pick(data, "innerRadiusMeters", "inner_radius_m"))
        self.tubing_type_id = _pick(data, "tubingTypeId", "tubing_type_id")

    @property
    def from_node_id(self) -> str:
        return port_node_id(self.from_component_id, self.from_port_id)

    @property
    def to_node_id(self) -> str:
        return port_node_id(self.to_component_id, self.to_port_id)


class Node:
    """
    计算节点：压力的载体。泵和出口的压力为已知边界条件。
    """

    def __init__(self, node_id: str, role: NodeRole = NodeRole.PORT,
                 known_pressure: Optional[float] = None,
                 component_id: Optional[str] = None, port_id: Optional[str] = None):
        self.id = node_id
        self.role = role
        self.known_pressure = known_pressure
        self.component_id = component_id
        self.port_id = port_id

    @property
    def is_known(self) -> bool:
        return self.role.has_known_pressure and self.known_pressure is not None

    def __repr__(self):
        return f"Node({self.id!r}, {self.role.value}, p={self.known_pressure})"


@dataclass(frozen=True, order=True)
class SegmentKey:
    """
    管段的规范键：两个节点 ID 按字典序排列，与声明方向无关。
    """
    first: str
    second: str

    @classmethod
    def of(cls, node_a: str, node_b: str) -> "SegmentKey":
        a, b = sys.intern(node_a), sys.intern(node_b)
        return cls(a, b) if a <= b else cls(b, a)

    @property
    def label(self) -> str:
        return f"{self.first}{SEGMENT_LABEL_SEPARATOR}{self.second}"

    def other(self, node_id: str) -> str:
        return self.second if node_id == self.first else self.first

    def __contains__(self, node_id) -> bool:
        return node_id == self.first or node_id == self.second

    def __str__(self):
        return self.label


class Segment:
    """
    阻力元件：连接两个节点的软管或芯片内部通道。
    node1 -> node2 为声明方向，流量正值表示 node1 流向 node2。
    """

    def __init__(self, node1: str, node2: str, resistance: float, kind: SegmentKind,
                 component_id: Optional[str] = None, connection_id: Optional[str] = None):
        self.key = SegmentKey.of(node1, node2)
        self.node1 = node1
        self.node2 = node2
        self.resistance = resistance
        self.kind = kind
        self.component_id = component_id
        self.connection_ids: List[str] = [connection_id] if connection_id else []

    @property
    def id(self) -> SegmentKey:
        return self.key

    @property
    def is_valid(self) -> bool:
        return self.resistance is not None and math.isfinite(self.resistance) and self.resistance > 0

    def __repr__(self):
        return f"Segment({self.key.label}, R={self.resistance}, {self.kind.value})"


@dataclass(frozen=True)
class SegmentFlow:
    flow: float        # m³/s，正值为 node1 -> node2
    from_node: str
    to_node: str
    resistance: float


class SimulationResults:
    """一次仿真的完整输出，交给界面层渲染"""

    def __init__(self, node_pressures: Optional[Dict[str, float]] = None,
                 segment_flows: Optional[Dict[SegmentKey, SegmentFlow]] = None,
                 warnings: Optional[List[Diagnostic]] = None,
                 errors: Optional[List[Diagnostic]] = None):
        self.node_pressures = node_pressures if node_pressures is not None else {}
        self.segment_flows = segment_flows if segment_flows is not None else {}
        self.warnings = warnings if warnings is not None else []
        self.errors = errors if errors is not None else []

    @classmethod
    def empty(cls) -> "SimulationResults":
        return cls()

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "nodePressures": dict(self.node_pressures),
            "segmentFlows": {
                key.label: {"flow": f.flow, "from": f.from_node, "to": f.to_node}
                for key, f in self.segment_flows.items()
            },
            "warnings": [w.to_dict() for w in self.warnings],
            "errors": [e.to_dict() for e in self.errors],
        }
