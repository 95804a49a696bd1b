from enum import Enum
from typing import List, Optional


class DiagnosticCode(Enum):
    """诊断代码：中止类错误与可恢复的警告共用一套命名"""
    # 中止类 (Abort)
    UNRESOLVED_REFERENCE = "UnresolvedReference"
    NO_CONNECTIONS = "NoConnections"
    SINGULAR_NETWORK = "SingularNetwork"
    EMPTY_DESIGN = "EmptyDesign"
    DUPLICATE_NODE_ID = "DuplicateNodeId"
    INVALID_SNAPSHOT = "InvalidSnapshot"
    # 可恢复 (Recoverable)
    INVALID_RESISTANCE = "InvalidResistance"
    ISOLATED_NODE = "IsolatedNode"
    SOLVER_NUMERICAL_ERROR = "SolverNumericalError"
    NON_FINITE_PRESSURE = "NonFinitePressure"
    ZERO_RESISTANCE = "ZeroResistance"
    NON_FINITE_FLOW = "NonFiniteFlow"
    DEFAULT_PUMP_PRESSURE = "DefaultPumpPressure"
    DUPLICATE_SEGMENT = "DuplicateSegment"
    SELF_LOOP = "SelfLoop"
    PORT_COUNT_MISMATCH = "PortCountMismatch"
    NO_BOUNDARY = "NoBoundary"
    NO_PUMP_OUTLET_PATH = "NoPumpOutletPath"


class Diagnostic:
    """
    一条诊断记录。
    code: 诊断代码, message: 可读描述, subject: 相关的节点/管段/元件 ID
    """

    def __init__(self, code: DiagnosticCode, message: str, subject: Optional[str] = None):
        self.code = code
        self.message = message
        self.subject = subject

    def __eq__(self, other):
        if not isinstance(other, Diagnostic):
            return NotImplemented
        return (self.code, self.message, self.subject) == (other.code, other.message, other.subject)

    def __repr__(self):
        return f"Diagnostic({self.code.value}, {self.message!r}, subject={self.subject!r})"

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message, "subject": self.subject}


class NetworkError(Exception):
    """中止类错误的基类：流水线立即停止，不返回部分结果"""
    code = None

    def __init__(self, message: str, subject: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.subject = subject

    @property
    def diagnostic(self) -> Diagnostic:
        return Diagnostic(self.code, self.message, self.subject)


class UnresolvedReference(NetworkError):
    """连接或内部连线引用了不存在的端口"""
    code = DiagnosticCode.UNRESOLVED_REFERENCE

    def __init__(self, references: List[str]):
        self.references = list(references)
        super().__init__("存在无法解析的端口引用: " + ", ".join(self.references))


class NoConnections(NetworkError):
    code = DiagnosticCode.NO_CONNECTIONS


class SingularNetwork(NetworkError):
    code = DiagnosticCode.SINGULAR_NETWORK


class EmptyDesign(NetworkError):
    code = DiagnosticCode.EMPTY_DESIGN


class DuplicateNodeId(NetworkError):
    """两个端口 (或端口与内部汇合点) 映射到同一个节点 ID"""
    code = DiagnosticCode.DUPLICATE_NODE_ID


class InvalidSnapshot(NetworkError):
    """快照内容无法解析 (未知芯片类型、数值字段非法等)"""
    code = DiagnosticCode.INVALID_SNAPSHOT


class InvalidResistance(NetworkError, ValueError):
    """阻力计算参数非法 (长度/半径/粘度 <= 0 或非有限值)"""
    code = DiagnosticCode.INVALID_RESISTANCE
