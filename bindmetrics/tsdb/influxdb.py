"""InfluxDB 1.x store writing line protocol over HTTP."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlparse

import requests

from bindmetrics.tsdb.base import Point, SenderConfigError, TimeseriesStore

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class InfluxDbWriteError(RuntimeError):
    """A write request failed or InfluxDB rejected it."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


def _escape_measurement(val: str) -> str:
    return val.replace(",", "\\,").replace(" ", "\\ ")


def _escape_key(val: str) -> str:
    return val.replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _encode_field(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _timestamp_ns(ts: datetime) -> int:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (ts - EPOCH) // timedelta(microseconds=1) * 1000


def point_to_line(point: Point) -> str:
    key = _escape_measurement(point.measurement)
    tags = ",".join(f"{_escape_key(k)}={_escape_key(v)}" for k, v in sorted(point.tags.items()))
    fields = ",".join(f"{_escape_key(k)}={_encode_field(v)}" for k, v in sorted(point.fields.items()))
    if tags:
        key = f"{key},{tags}"
    return f"{key} {fields} {_timestamp_ns(point.ts)}"


class InfluxDbTimeseriesStore(TimeseriesStore):
    """Writes points to InfluxDB 1.x using the HTTP /write endpoint."""

    def __init__(
        self,
        url: str,
        username: str = "",
        password: str = "",
        timeout: float = 2.0,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https"):
            raise SenderConfigError(f"unsupported protocol scheme in InfluxDB URL {url!r}, expected http or https")
        if not parsed.netloc:
            raise SenderConfigError(f"InfluxDB URL {url!r} has no host")
        if timeout <= 0:
            raise SenderConfigError("InfluxDB timeout must be positive")

        self.url = url.rstrip("/")
        self.timeout = float(timeout)
        self.logger = logger or logging.getLogger(__name__)
        self.session = session or requests.Session()
        if username:
            self.session.auth = (username, password or "")

    def write_points(self, points: list[Point], database: str) -> None:
        if not points:
            return
        payload = "\n".join(point_to_line(p) for p in points).encode("utf-8")
        try:
            response = self.session.post(
                f"{self.url}/write",
                params={"db": database, "precision": "ns"},
                data=payload,
                headers={"Content-Type": "text/plain; charset=utf-8"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise InfluxDbWriteError(f"InfluxDB write request failed: {exc}") from exc

        status = response.status_code
        if 200 <= status < 300:
            return
        raise InfluxDbWriteError(
            f"InfluxDB write rejected (status={status}): {self._error_message(response)}",
            status_code=status,
        )

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text.strip() or "no response body"
        if isinstance(payload, dict) and payload.get("error"):
            return str(payload["error"])
        return str(payload)

    def close(self) -> None:
        self.session.close()
