import json
import logging
import os
from typing import Dict, List

from ..calculation.physics import Fluid
from ..constants import DEFAULT_TUBE_INNER_RADIUS_M, DEFAULT_TUBING_TYPE_ID

logger = logging.getLogger(__name__)

TUBING = "软管"
FLUID = "流体"


class CatalogStore:
    """简单的元件目录存取：存为 JSON，包含软管规格与工作流体两类条目。"""

    def __init__(self, base_dir: str):
        self.base_dir = base_dir
        self.path = os.path.join(base_dir, "catalog.json")
        self.data: List[Dict] = []
        self._ensure_dir()
        self._load()

    def _ensure_dir(self):
        os.makedirs(self.base_dir, exist_ok=True)

    def _default_data(self) -> List[Dict]:
        return [
            # 软管 (内半径单位 m)
            {"id": DEFAULT_TUBING_TYPE_ID, "name": "硅胶管 0.02\" ID", "category": TUBING,
             "inner_radius_m": DEFAULT_TUBE_INNER_RADIUS_M, "material": "Silicone", "remark": "默认软管"},
            {"id": "ptfe_0.01_inch_ID", "name": "PTFE 管 0.01\" ID", "category": TUBING,
             "inner_radius_m": 0.000127, "material": "PTFE", "remark": "高阻力细管"},
            {"id": "ptfe_0.03_inch_ID", "name": "PTFE 管 0.03\" ID", "category": TUBING,
             "inner_radius_m": 0.000381, "material": "PTFE", "remark": ""},
            {"id": "tygon_1_16_inch_ID", "name": "Tygon 管 1/16\" ID", "category": TUBING,
             "inner_radius_m": 0.0007938, "material": "Tygon", "remark": "低阻力供液管"},
            # 流体 (粘度 Pa·s, 密度 kg/m³)
            {"id": "fluid_water_20", "name": "水 (20℃)", "category": FLUID, "mu": 1.0e-3, "rho": 998.2},
            {"id": "fluid_water_37", "name": "水 (37℃)", "category": FLUID, "mu": 0.692e-3, "rho": 993.3},
            {"id": "fluid_pbs", "name": "PBS 缓冲液", "category": FLUID, "mu": 1.02e-3, "rho": 1005.0},
            {"id": "fluid_glycerol_50", "name": "50% 甘油", "category": FLUID, "mu": 6.0e-3, "rho": 1126.0},
        ]

    def _load(self):
        if not os.path.exists(self.path):
            self.data = self._default_data()
            self.save()
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                self.data = json.load(f)
            if not isinstance(self.data, list):
                self.data = self._default_data()
        except (OSError, ValueError) as e:
            logger.warning("目录文件 %s 读取失败，恢复默认数据: %s", self.path, e)
            self.data = self._default_data()
            self.save()

    def save(self):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.data, f, ensure_ascii=False, indent=2)

    def by_category(self, category: str) -> List[Dict]:
        return [d for d in self.data if d.get("category") == category]

    def tubing_types(self) -> Dict[str, float]:
        """软管类型 ID -> 内半径 (m)，供建图阶段计算管路阻力"""
        return {d["id"]: float(d["inner_radius_m"]) for d in self.by_category(TUBING)
                if d.get("inner_radius_m")}

    def fluid(self, name: str) -> Fluid:
        """按名称或 ID 查找流体；目录中没有时回落到内置物性表"""
        for d in self.by_category(FLUID):
            if name in (d.get("name"), d.get("id")):
                return Fluid(d.get("name", name), mu=d.get("mu"), rho=d.get("rho"))
        return Fluid(name)
