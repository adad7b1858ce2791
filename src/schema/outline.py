"""
Story Agent 数据模型 - 细纲结构

定义章节细纲、第三方评估以及带版本的优化历史。
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _score(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class DetailedOutlineAnalysis:
    """章节细纲 - 剧情点 + 下一章预告"""
    plot_points: List[Dict[str, Any]] = field(default_factory=list)
    next_chapter_preview: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plotPoints": [dict(p) for p in self.plot_points],
            "nextChapterPreview": dict(self.next_chapter_preview),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DetailedOutlineAnalysis':
        points = data.get("plotPoints") or []
        preview = data.get("nextChapterPreview") or {}
        return cls(
            plot_points=[dict(p) for p in points if isinstance(p, dict)],
            next_chapter_preview=dict(preview) if isinstance(preview, dict) else {},
        )


@dataclass
class ScoreItem:
    dimension: str
    score: float = 0.0
    reason: str = ""


@dataclass
class ImprovementSuggestion:
    area: str
    suggestion: str = ""


@dataclass
class OutlineCritique:
    """第三方评估"""
    overall_score: float = 0.0
    scoring_breakdown: List[ScoreItem] = field(default_factory=list)
    improvement_suggestions: List[ImprovementSuggestion] = field(default_factory=list)
    thought_process: str = ""

    def suggestions_as_dicts(self) -> List[Dict[str, str]]:
        return [{"area": s.area, "suggestion": s.suggestion} for s in self.improvement_suggestions]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thoughtProcess": self.thought_process,
            "overallScore": self.overall_score,
            "scoringBreakdown": [
                {"dimension": s.dimension, "score": s.score, "reason": s.reason}
                for s in self.scoring_breakdown
            ],
            "improvementSuggestions": self.suggestions_as_dicts(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OutlineCritique':
        breakdown = [
            ScoreItem(
                dimension=str(item.get("dimension", "")),
                score=_score(item.get("score")),
                reason=str(item.get("reason", "")),
            )
            for item in data.get("scoringBreakdown") or []
            if isinstance(item, dict)
        ]
        suggestions = [
            ImprovementSuggestion(area=str(item.get("area", "")), suggestion=str(item.get("suggestion", "")))
            for item in data.get("improvementSuggestions") or []
            if isinstance(item, dict)
        ]
        return cls(
            overall_score=_score(data.get("overallScore")),
            scoring_breakdown=breakdown,
            improvement_suggestions=suggestions,
            thought_process=str(data.get("thoughtProcess") or ""),
        )


@dataclass
class OptimizationHistoryEntry:
    """一次 生成->评估 的结果"""
    version: int
    outline: DetailedOutlineAnalysis
    critique: OutlineCritique

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "critique": self.critique.to_dict(),
            "outline": self.outline.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OptimizationHistoryEntry':
        return cls(
            version=int(data.get("version", 0)),
            outline=DetailedOutlineAnalysis.from_dict(data.get("outline") or {}),
            critique=OutlineCritique.from_dict(data.get("critique") or {}),
        )


@dataclass
class FinalDetailedOutline:
    """最终细纲 - 最新版本内容 + 完整优化历史"""
    analysis: DetailedOutlineAnalysis
    final_version: int
    optimization_history: List[OptimizationHistoryEntry] = field(default_factory=list)

    @property
    def latest_entry(self) -> Optional[OptimizationHistoryEntry]:
        return self.optimization_history[-1] if self.optimization_history else None

    def to_dict(self) -> Dict[str, Any]:
        data = self.analysis.to_dict()
        data["finalVersion"] = self.final_version
        data["optimizationHistory"] = [e.to_dict() for e in self.optimization_history]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FinalDetailedOutline':
        return cls(
            analysis=DetailedOutlineAnalysis.from_dict(data),
            final_version=int(data.get("finalVersion", 0)),
            optimization_history=[
                OptimizationHistoryEntry.from_dict(e)
                for e in data.get("optimizationHistory") or []
                if isinstance(e, dict)
            ],
        )
