import math

from ..constants import FLUID_VISCOSITY_PAS, FLUID_DENSITY_KGM3
from .errors import InvalidResistance


class Fluid:
    """
    流体物性类：管理工作流体的密度、粘度等物理属性。
    微流控网络按层流 (Stokes 流) 处理，水力阻力只依赖动力粘度 mu。
    """
    FLUID_DATABASE = {
        "水 (20℃)": {"rho": FLUID_DENSITY_KGM3, "mu": FLUID_VISCOSITY_PAS},
        "水 (37℃)": {"rho": 993.3, "mu": 0.692e-3},
        "PBS 缓冲液": {"rho": 1005.0, "mu": 1.02e-3},
        "乙醇": {"rho": 789.0, "mu": 1.2e-3},
        "50% 甘油": {"rho": 1126.0, "mu": 6.0e-3},
    }
    DEFAULT_NAME = "水 (20℃)"

    def __init__(self, name=DEFAULT_NAME, mu=None, rho=None):
        self.name = name
        self.rho = FLUID_DENSITY_KGM3  # 密度 kg/m³
        self.mu = FLUID_VISCOSITY_PAS  # 动力粘度 Pa·s
        self.update_properties()
        # 显式给定的物性覆盖数据库取值
        if mu is not None:
            self.mu = float(mu)
        if rho is not None:
            self.rho = float(rho)

    def update_properties(self):
        """根据选择的流体更新物性参数，未知名称回落到默认水"""
        data = self.FLUID_DATABASE.get(self.name, self.FLUID_DATABASE[self.DEFAULT_NAME])
        self.rho = data["rho"]
        self.mu = data["mu"]

    @property
    def nu(self) -> float:
        """运动粘度 m²/s"""
        return self.mu / self.rho


def _require_positive(**values):
    for name, value in values.items():
        if value is None or not math.isfinite(value) or value <= 0:
            raise InvalidResistance(f"阻力计算参数非法: {name}={value}")


def tubing_resistance(length_m: float, inner_radius_m: float,
                      viscosity_pa_s: float = FLUID_VISCOSITY_PAS) -> float:
    """
    圆管水力阻力 (Hagen-Poiseuille): R = 8 * mu * L / (pi * r^4)
    返回 Pa·s/m³。长度或半径 <= 0 时抛出 InvalidResistance。
    """
    _require_positive(length_m=length_m, inner_radius_m=inner_radius_m,
                      viscosity_pa_s=viscosity_pa_s)
    return (8.0 * viscosity_pa_s * length_m) / (math.pi * inner_radius_m ** 4)


def hydraulic_diameter(width_m: float, depth_m: float) -> float:
    """矩形截面水力直径 D_h = 4A/P = 2wd/(w+d)"""
    _require_positive(width_m=width_m, depth_m=depth_m)
    return 2.0 * width_m * depth_m / (width_m + depth_m)


def channel_resistance(length_m: float, width_m: float, depth_m: float,
                       viscosity_pa_s: float = FLUID_VISCOSITY_PAS) -> float:
    """
    矩形微通道水力阻力 (近似)。
    将水力直径 D_h 代入圆管 Poiseuille 公式 (r = D_h / 2)。
    注意：这只是工程近似，并非矩形管道的精确解；
    宽深比偏离 1 时误差增大，需要精确值时使用 channel_resistance_series。
    """
    _require_positive(length_m=length_m, viscosity_pa_s=viscosity_pa_s)
    radius = hydraulic_diameter(width_m, depth_m) / 2.0
    return tubing_resistance(length_m, radius, viscosity_pa_s)


def channel_resistance_series(length_m: float, width_m: float, depth_m: float,
                              viscosity_pa_s: float = FLUID_VISCOSITY_PAS,
                              terms: int = 100) -> float:
    """
    矩形通道精确级数解：
    R = 12*mu*L / (w*h³) * [1 - (192/pi⁵)(h/w) * Σ_{n 奇数} tanh(n*pi*w/(2h)) / n⁵]^-1
    其中 h 取较小边，w 取较大边。
    """
    _require_positive(length_m=length_m, width_m=width_m, depth_m=depth_m,
                      viscosity_pa_s=viscosity_pa_s)
    w = max(width_m, depth_m)
    h = min(width_m, depth_m)

    series = 0.0
    for n in range(1, 2 * terms, 2):
        series += math.tanh(n * math.pi * w / (2.0 * h)) / n ** 5

    correction = 1.0 - (192.0 / math.pi ** 5) * (h / w) * series
    return 12.0 * viscosity_pa_s * length_m / (w * h ** 3 * correction)
