"""Tab widgets shown in the SensoGuard main window."""

from .tab_charts import ChartsTab
from .tab_readings import ReadingsTab

__all__ = ["ChartsTab", "ReadingsTab"]
