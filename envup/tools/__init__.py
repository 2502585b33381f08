"""External tool descriptors and the capability probe."""

from .base import Command, Tool
from .definitions import ToolSet, build_tools
from .probe import Absent, CapabilityProbe, Present, ProbeResult, leading_major

__all__ = [
    "Absent",
    "CapabilityProbe",
    "Command",
    "Present",
    "ProbeResult",
    "Tool",
    "ToolSet",
    "build_tools",
    "leading_major",
]
