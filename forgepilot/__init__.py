"""
Forge Pilot
===========

Coordination layer for autonomous coding workers: lifecycle event log,
CI merge gating and worker admission control.
"""

__version__ = "0.1.0"
