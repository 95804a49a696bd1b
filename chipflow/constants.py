# 物理常量与默认值 (内部计算统一使用 SI 单位)

# 默认流体：20℃ 水
FLUID_VISCOSITY_PAS = 1.0e-3   # 动力粘度 Pa·s
FLUID_DENSITY_KGM3 = 998.2     # 密度 kg/m³

# 默认软管：0.02" 内径硅胶管
DEFAULT_TUBE_INNER_RADIUS_M = 0.000254
DEFAULT_TUBING_TYPE_ID = "default_0.02_inch_ID_silicone"

# 油泵端口未设定压力时的默认值 (Pa)
DEFAULT_PUMP_PRESSURE_PA = 0.0

# 出口 (Outlet) 作为接地参考点
OUTLET_PRESSURE_PA = 0.0

# T/X 型芯片未给出分支长度时，取主通道长度的一半
JUNCTION_SEGMENT_LENGTH_FRACTION = 0.5

# 显示单位换算 (仅用于终端摘要)
PASCAL_TO_MBAR = 0.01
MBAR_TO_PASCAL = 100.0
M3S_TO_ULMIN = 6e10

# 节点命名约定
INTERNAL_JUNCTION_SUFFIX = "_internal_junction"
SEGMENT_LABEL_SEPARATOR = "--"
