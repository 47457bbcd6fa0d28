"""
SolarFlow project timeline core.

Tracks solar-installation projects through their lifecycle phases,
reconciling phase statuses from scheduling tickets and gating manual
phase transitions.
"""

__version__ = "0.1.0"
