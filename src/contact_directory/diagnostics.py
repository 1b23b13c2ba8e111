from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class DiagnosticRecord:
    level: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level, "message": self.message, "context": dict(self.context)}


class Diagnostics:
    """
    Collects row-level and item-level findings raised while reconciling data.

    Every record is kept in ``records`` and forwarded to a logger, so callers can
    inspect what was skipped without scraping log output.
    """

    def __init__(self, sink_logger: Optional[logging.Logger] = None):
        self.records: List[DiagnosticRecord] = []
        self._logger = sink_logger or logger

    def _emit(self, level: str, message: str, args: tuple, context: Dict[str, Any]) -> None:
        rendered = message % args if args else message
        self.records.append(DiagnosticRecord(level=level, message=rendered, context=context))
        self._logger.log(_LEVELS[level], rendered)

    def debug(self, message: str, *args: Any, **context: Any) -> None:
        self._emit("debug", message, args, context)

    def info(self, message: str, *args: Any, **context: Any) -> None:
        self._emit("info", message, args, context)

    def warning(self, message: str, *args: Any, **context: Any) -> None:
        self._emit("warning", message, args, context)

    def error(self, message: str, *args: Any, **context: Any) -> None:
        self._emit("error", message, args, context)

    def by_level(self, level: str) -> List[DiagnosticRecord]:
        return [record for record in self.records if record.level == level]

    @property
    def warnings(self) -> List[DiagnosticRecord]:
        return self.by_level("warning")


def ensure_diagnostics(
    diagnostics: Optional[Diagnostics], sink_logger: Optional[logging.Logger] = None
) -> Diagnostics:
    return diagnostics if diagnostics is not None else Diagnostics(sink_logger)
