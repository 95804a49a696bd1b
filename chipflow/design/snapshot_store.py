import json
import logging
import os
from typing import Dict, List, Optional

from ..calculation.models import Component, Connection

logger = logging.getLogger(__name__)


class SnapshotStore:
    """
    画布拓扑快照 (元件、管路)，存储到 JSON 以供后续计算。
    components: [{id, chipType, ports, resistance | perSegmentResistance, portPressures, ...}]
    connections: [{id, fromComponentId, fromPortId, toComponentId, toPortId, resistance, ...}]
    settings: {defaultPumpPressure, fluid, viscosityPaS, diagonalEpsilon}
    """

    def __init__(self, json_path: str):
        self.json_path = json_path
        self.data = self._empty()
        self._load()

    @staticmethod
    def _empty() -> Dict:
        return {"components": [], "connections": [], "settings": {}}

    def _load(self):
        directory = os.path.dirname(self.json_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if os.path.exists(self.json_path):
            try:
                with open(self.json_path, "r", encoding="utf-8") as f:
                    self.data = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning("快照文件 %s 读取失败，使用空画布: %s", self.json_path, e)
                self.data = self._empty()
            for key, value in self._empty().items():
                self.data.setdefault(key, value)
        else:
            self._save()

    def _save(self):
        with open(self.json_path, "w", encoding="utf-8") as f:
            json.dump(self.data, f, ensure_ascii=False, indent=2)

    @staticmethod
    def _upsert(items: List[Dict], item: Dict) -> bool:
        item_id = item.get("id")
        if not item_id:
            return False
        for i, existing in enumerate(items):
            if existing.get("id") == item_id:
                items[i] = item
                return True
        items.append(item)
        return True

    # Components
    def upsert_component(self, component: Dict):
        if self._upsert(self.data["components"], component):
            self._save()

    def get_component(self, component_id: str) -> Optional[Dict]:
        for c in self.data["components"]:
            if c.get("id") == component_id:
                return c
        return None

    def delete_component(self, component_id: str):
        """删除元件及其关联的所有管路"""
        self.data["components"] = [c for c in self.data["components"] if c.get("id") != component_id]
        self.data["connections"] = [
            conn for conn in self.data["connections"]
            if component_id not in (Connection(conn).from_component_id, Connection(conn).to_component_id)
        ]
        self._save()

    # Connections
    def upsert_connection(self, connection: Dict):
        if self._upsert(self.data["connections"], connection):
            self._save()

    def get_connection(self, connection_id: str) -> Optional[Dict]:
        for conn in self.data["connections"]:
            if conn.get("id") == connection_id:
                return conn
        return None

    def delete_connection(self, connection_id: str):
        self.data["connections"] = [c for c in self.data["connections"] if c.get("id") != connection_id]
        self._save()

    # Settings
    @property
    def settings(self) -> Dict:
        return dict(self.data.get("settings") or {})

    def update_settings(self, **values):
        self.data.setdefault("settings", {}).update(values)
        self._save()

    def clear(self):
        """清空画布数据"""
        self.data = self._empty()
        self._save()

    # 计算引擎只读取不可变的对象快照
    def components(self) -> List[Component]:
        return [Component(d) for d in self.data["components"]]

    def connections(self) -> List[Connection]:
        return [Connection(d) for d in self.data["connections"]]
