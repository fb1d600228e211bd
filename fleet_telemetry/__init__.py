"""
Fleet Telemetry Engine

Classification, alerting and trend analysis for vehicle telemetry readings.
Handles fuel, emission, GPS and OBD samples reported by tracking devices.
"""

__version__ = "1.0.0"
