"""Issue records produced by the analyzer and their per-severity summary."""

from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class IssueSeverity(str, Enum):
    """Severity levels, most severe first."""
    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Sort key: lower is more severe."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: Dict[IssueSeverity, int] = {
    IssueSeverity.CRITICAL: 0,
    IssueSeverity.ERROR: 1,
    IssueSeverity.WARNING: 2,
    IssueSeverity.INFO: 3,
}


class IssueCategory(str, Enum):
    """Broad area an issue belongs to."""
    CONTENT = "content"
    META = "meta"
    PERFORMANCE = "performance"
    ACCESSIBILITY = "accessibility"
    TECHNICAL = "technical"


class Issue(BaseModel):
    """A single actionable finding."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(description="Stable identifier, e.g. missing_title")
    severity: IssueSeverity
    description: str
    recommendation: Optional[str] = None
    affected_urls: List[str] = Field(default_factory=list)
    category: IssueCategory = IssueCategory.TECHNICAL

    def sort_key(self):
        return (self.severity.rank, self.type, self.description)


def sort_issues(issues: Iterable[Issue]) -> List[Issue]:
    """Order issues by severity, then type, then description."""
    return sorted(issues, key=lambda issue: issue.sort_key())


class IssuesSummary(BaseModel):
    """Issue counts per severity."""

    critical: int = 0
    error: int = 0
    warning: int = 0
    info: int = 0
    total: int = 0

    @classmethod
    def from_issues(cls, issues: Iterable[Issue]) -> "IssuesSummary":
        counts = {severity.value: 0 for severity in IssueSeverity}
        for issue in issues:
            counts[issue.severity.value] += 1
        return cls(**counts, total=sum(counts.values()))
