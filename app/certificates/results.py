"""
Stage results for the webhook / sync pipeline.

Each stage returns a StageResult instead of raising, and the caller logs
the whole run once. Only malformed input escapes as an exception.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Stage(str, Enum):
    PARSE = "parse"
    LOOKUP = "lookup"
    TRANSITION = "transition"
    PERSIST = "persist"
    NOTIFY = "notify"


class StageOutcome(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StageResult:
    stage: Stage
    outcome: StageOutcome
    reason: Optional[str] = None
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.outcome == StageOutcome.OK

    @classmethod
    def success(cls, stage: Stage, data: Any = None, reason: Optional[str] = None) -> "StageResult":
        return cls(stage, StageOutcome.OK, reason=reason, data=data)

    @classmethod
    def skipped(cls, stage: Stage, reason: str) -> "StageResult":
        return cls(stage, StageOutcome.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, stage: Stage, reason: str, data: Any = None) -> "StageResult":
        return cls(stage, StageOutcome.FAILED, reason=reason, data=data)


@dataclass
class PipelineOutcome:
    """Everything that happened while processing one status update."""
    protocol: Optional[str] = None
    raw_status: Optional[str] = None
    status: Optional[str] = None
    previous_status: Optional[str] = None
    stages: List[StageResult] = field(default_factory=list)

    def add(self, result: StageResult) -> StageResult:
        self.stages.append(result)
        return result

    def get(self, stage: Stage) -> Optional[StageResult]:
        for result in self.stages:
            if result.stage == stage:
                return result
        return None

    @property
    def persisted(self) -> bool:
        result = self.get(Stage.PERSIST)
        return result is not None and result.ok

    @property
    def notified(self) -> bool:
        result = self.get(Stage.NOTIFY)
        return result is not None and result.ok

    @property
    def changed(self) -> bool:
        return self.persisted and self.status != self.previous_status

    @property
    def failures(self) -> List[StageResult]:
        return [r for r in self.stages if r.outcome == StageOutcome.FAILED]

    def summary(self) -> Dict[str, Any]:
        return {
            "protocol": self.protocol,
            "raw_status": self.raw_status,
            "status": self.status,
            "previous_status": self.previous_status,
            "stages": {r.stage.value: r.outcome.value for r in self.stages},
            "failures": {r.stage.value: r.reason for r in self.failures},
        }

    def log(self, logger: logging.Logger, source: str) -> None:
        """Single log line per processed update."""
        summary = self.summary()
        level = logging.WARNING if self.failures else logging.INFO
        logger.log(
            level,
            f"{source} processed: protocol={self.protocol} status={self.status} "
            f"previous={self.previous_status} stages={summary['stages']}"
            + (f" failures={summary['failures']}" if self.failures else ""),
            extra={"extra_data": summary},
        )
