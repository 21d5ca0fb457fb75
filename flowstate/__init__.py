"""flowstate -- modular project scaffolding.

Pick modules from a registry, let the resolver turn the selection into a
complete, conflict-free and ordered set, then let the template merge engine
write the combined project files.
"""

__version__ = "0.4.0"
