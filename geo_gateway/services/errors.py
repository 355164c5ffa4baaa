from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    MISSING_MODE = "MissingMode"
    UNSUPPORTED_MODE = "UnsupportedMode"
    GEOMETRY_NOT_ALLOWED = "GeometryNotAllowed"
    INVALID_GEOMETRY_CARDINALITY = "InvalidGeometryCardinality"
    MISSING_RADIUS = "MissingRadius"
    DEGENERATE_RECTANGLE = "DegenerateRectangle"
    INVALID_REQUEST = "InvalidRequest"
    UPSTREAM_HTTP_ERROR = "UpstreamHttpError"
    UPSTREAM_PARSE_ERROR = "UpstreamParseError"
    UPSTREAM_TIMEOUT = "UpstreamTimeout"
    UPSTREAM_UNREACHABLE = "UpstreamUnreachable"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES.get(self, 400)

    @property
    def is_upstream(self) -> bool:
        return self.status_code >= 500


_STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.UPSTREAM_HTTP_ERROR: 502,
    ErrorKind.UPSTREAM_PARSE_ERROR: 502,
    ErrorKind.UPSTREAM_UNREACHABLE: 503,
    ErrorKind.UPSTREAM_TIMEOUT: 504,
}


@dataclass(frozen=True)
class GatewayError:
    kind: ErrorKind
    message: str
    details: Optional[str] = None
    debug: Optional[Dict[str, Any]] = None

    def to_payload(self, include_debug: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.kind.value}
        if self.kind.is_upstream:
            payload["details"] = self.details or self.message
        if include_debug and self.debug:
            payload["debug"] = self.debug
        return payload


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or a :class:`GatewayError`, never both."""

    value: Optional[T] = None
    error: Optional[GatewayError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        *,
        details: Optional[str] = None,
        debug: Optional[Dict[str, Any]] = None,
    ) -> "Outcome[T]":
        return cls(error=GatewayError(kind=kind, message=message, details=details, debug=debug))
