"""Issue records produced by the analyzer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class IssueType(str, Enum):
    MISSING_TRANSITIONS = "missing-transitions"
    ISOLATED_STATE = "isolated-state"
    MISSING_UI_COVERAGE = "missing-ui-coverage"
    INCOMPLETE_UI_COVERAGE = "incomplete-ui-coverage"
    EMPTY_INHERITANCE = "empty-inheritance"
    BROKEN_TRANSITION = "broken-transition"


@dataclass
class Suggestion:
    """A possible fix; ``data`` carries what an auto-fixer would need."""

    action: str
    title: str
    description: str = ""
    auto_fixable: bool = False
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Issue:
    severity: IssueSeverity
    type: IssueType
    state_name: str
    title: str
    message: str
    suggestions: List[Suggestion] = field(default_factory=list)
    affected_fields: List[str] = field(default_factory=list)
    location: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["severity"] = self.severity.value
        data["type"] = self.type.value
        return data


@dataclass
class AnalysisSummary:
    total_issues: int = 0
    error_count: int = 0
    warning_count: int = 0
    info_count: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_state: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_issues(cls, issues: List[Issue]) -> "AnalysisSummary":
        summary = cls(total_issues=len(issues))
        for issue in issues:
            if issue.severity is IssueSeverity.ERROR:
                summary.error_count += 1
            elif issue.severity is IssueSeverity.WARNING:
                summary.warning_count += 1
            else:
                summary.info_count += 1
            summary.by_type[issue.type.value] = summary.by_type.get(issue.type.value, 0) + 1
            summary.by_state[issue.state_name] = summary.by_state.get(issue.state_name, 0) + 1
        return summary


@dataclass
class AnalysisResult:
    project_path: str
    total_implications: int
    issues: List[Issue]
    summary: AnalysisSummary

    def by_severity(self, severity: IssueSeverity) -> List[Issue]:
        return [i for i in self.issues if i.severity is severity]

    def by_type(self, issue_type: IssueType) -> List[Issue]:
        return [i for i in self.issues if i.type is issue_type]

    def for_state(self, state_name: str) -> List[Issue]:
        return [i for i in self.issues if i.state_name == state_name]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectPath": self.project_path,
            "totalImplications": self.total_implications,
            "issues": [i.to_dict() for i in self.issues],
            "summary": asdict(self.summary),
        }
