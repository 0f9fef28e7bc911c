"""TSDB package exports."""

from bindmetrics.tsdb.base import (  # noqa: F401
    ConstructionError,
    Point,
    PointValidationError,
    SenderConfigError,
    TimeseriesStore,
)
from bindmetrics.tsdb.influxdb import InfluxDbTimeseriesStore, InfluxDbWriteError  # noqa: F401
from bindmetrics.tsdb.writer import DeliveryError, FlushResult, MetricsSender, create_sender  # noqa: F401
