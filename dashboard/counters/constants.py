"""Closed set of dashboard counter names."""

from __future__ import annotations

from enum import StrEnum


class MetricName(StrEnum):
    PAIRCODE = "paircode"
    API = "api"
    BOT = "bot"
    CDN = "cdn"


METRIC_NAMES: tuple[str, ...] = tuple(member.value for member in MetricName)

MESSAGE_INIT = "INIT"
MESSAGE_UPDATE = "UPDATE"

ERROR_TYPE_REQUIRED = "Type is required"
ERROR_INVALID_TYPE = "Invalid metric type"
ERROR_INTERNAL = "Internal server error"
