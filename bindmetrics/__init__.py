"""Forward BIND query log events to InfluxDB as metric points."""

__version__ = "0.1.0"
