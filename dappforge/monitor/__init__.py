"""Resource monitoring and Rich rendering of run results."""

from dappforge.monitor.renderer import MonitorRenderer
from dappforge.monitor.resources import ResourceMonitor

__all__ = ["MonitorRenderer", "ResourceMonitor"]
