"""Transit service-disruption monitor built on GTFS-realtime vehicle positions."""

__version__ = "0.1.0"
