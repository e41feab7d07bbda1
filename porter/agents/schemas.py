"""
Stage Output Shapes
Pydantic models that validate what each stage's model call returned

Agents validate raw JSON with these models and hand the result on as a
plain dict (camelCase keys) via `to_record`. No model instance leaves an
agent.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class _CaseInsensitiveEnum(str, Enum):

    @classmethod
    def _missing_(cls, value):
        """Handle case-insensitive matching (e.g. 'HIGH' -> 'high')"""
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class Trend(_CaseInsensitiveEnum):
    UP = 'up'
    DOWN = 'down'
    STABLE = 'stable'


class Urgency(_CaseInsensitiveEnum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class Severity(_CaseInsensitiveEnum):
    """Ordered four-level issue scale"""
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'

    @property
    def rank(self) -> int:
        return list(Severity).index(self)

    # str comparison would order alphabetically
    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


class NextStepCategory(_CaseInsensitiveEnum):
    ANALYSIS = 'analysis'
    FILTER = 'filter'
    REPORT = 'report'
    ACTION = 'action'
    COMPARISON = 'comparison'


class IntentAction(_CaseInsensitiveEnum):
    SHOW_REPORT = 'show_report'
    FILTER_DATA = 'filter_data'
    HIGHLIGHT_METRIC = 'highlight_metric'
    SHOW_CHART = 'show_chart'
    NAVIGATE = 'navigate'
    NONE = 'none'


class StageModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode='json')


# ==================== Context Reader ====================

class MetricReading(StageModel):
    name: str
    value: str
    trend: Trend = Trend.STABLE

    @field_validator('value', mode='before')
    @classmethod
    def stringify_value(cls, v):
        return v if isinstance(v, str) else str(v)


class ChartSummary(StageModel):
    type: str = ''
    title: str = ''
    key_insights: List[str] = Field(default_factory=list, alias='keyInsights')


class VisualContext(StageModel):
    metrics: List[MetricReading] = Field(default_factory=list)
    charts: List[ChartSummary] = Field(default_factory=list)
    anomalies: List[str] = Field(default_factory=list)
    timeframe: str = 'current'


class UserIntent(StageModel):
    primary_question: str = Field(alias='primaryQuestion')
    specific_metrics: List[str] = Field(default_factory=list, alias='specificMetrics')
    terminals: List[str] = Field(default_factory=list)
    timeframe: str = ''
    urgency_level: Urgency = Field(Urgency.MEDIUM, alias='urgencyLevel')


class ContextReaderOutput(StageModel):
    visual_context: VisualContext = Field(default_factory=VisualContext, alias='visualContext')
    user_intent: UserIntent = Field(alias='userIntent')
    context_summary: str = Field(alias='contextSummary')


# ==================== Analyzer ====================

class DetectedIssue(StageModel):
    category: str
    severity: Severity
    description: str
    impact: str = ''


class Analysis(StageModel):
    key_findings: List[str] = Field(default_factory=list, alias='keyFindings')
    trends: List[str] = Field(default_factory=list)
    issues_detected: List[DetectedIssue] = Field(default_factory=list, alias='issuesDetected')
    benchmark_comparison: str = Field('', alias='benchmarkComparison')


class Recommendations(StageModel):
    immediate: List[str] = Field(default_factory=list)
    short_term: List[str] = Field(default_factory=list, alias='shortTerm')
    long_term: List[str] = Field(default_factory=list, alias='longTerm')


class SuggestedStep(StageModel):
    action: str
    description: str = ''
    benefit: str = ''


class AnalyzerOutput(StageModel):
    analysis: Analysis
    recommendations: Recommendations = Field(default_factory=Recommendations)
    suggested_next_steps: List[SuggestedStep] = Field(
        default_factory=list, alias='suggestedNextSteps'
    )


# ==================== Consolidator ====================

class NextStep(StageModel):
    id: str = ''
    action: str
    detail: str = ''
    category: NextStepCategory = NextStepCategory.ANALYSIS

    @field_validator('id', mode='before')
    @classmethod
    def stringify_id(cls, v):
        return '' if v is None else str(v)


class FrontendIntent(StageModel):
    action: IntentAction = IntentAction.NONE
    parameters: Optional[Dict[str, Any]] = None
    target_component: Optional[str] = Field(None, alias='targetComponent')
    confidence: Optional[float] = None

    @field_validator('action', mode='before')
    @classmethod
    def unknown_action_is_none(cls, v):
        # An intent outside the catalogue is treated as "no UI action"
        try:
            return IntentAction(v)
        except ValueError:
            return IntentAction.NONE

    @field_validator('confidence')
    @classmethod
    def clamp_confidence(cls, v):
        if v is None:
            return v
        return min(1.0, max(0.0, v))


class ConsolidatorOutput(StageModel):
    chat_response: str = Field(alias='chatResponse')
    key_insights: List[str] = Field(default_factory=list, alias='keyInsights')
    next_steps: List[NextStep] = Field(default_factory=list, alias='nextSteps')
    frontend_intent: FrontendIntent = Field(default_factory=FrontendIntent, alias='frontendIntent')
    language: str = 'en'

    @model_validator(mode='after')
    def number_next_steps(self):
        for index, step in enumerate(self.next_steps, 1):
            if not step.id:
                step.id = str(index)
        return self
