"""LangGraph-driven detailed outline cycle (generate -> critique -> merge)."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, TypedDict

from langgraph.graph import END, START, StateGraph

from generation.detailed_outline import DetailedOutlineGenerator, OutlineHistory
from schema.outline import (
    DetailedOutlineAnalysis,
    FinalDetailedOutline,
    OptimizationHistoryEntry,
    OutlineCritique,
)
from schema.story import GeneratedChapter, StoryOutline
from utils.abort import AbortSignal, check_abort

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class OutlineCycleState(TypedDict, total=False):
    """单次细纲优化循环的状态。"""

    story_outline: StoryOutline
    chapters: List[GeneratedChapter]
    title: str
    user_input: str
    abort: Optional[AbortSignal]
    previous: Optional[FinalDetailedOutline]
    version: int
    draft: DetailedOutlineAnalysis
    critique: OutlineCritique
    result: FinalDetailedOutline


class DetailedOutlineWorkflow:
    """
    细纲版本化优化循环

    每次 run 恰好产出一个新的 {outline, critique} 版本并追加到该章历史；
    任何一步失败都不会写入历史，版本号保持上一次成功的值。
    """

    def __init__(
        self,
        generator: DetailedOutlineGenerator,
        history: OutlineHistory,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.generator = generator
        self.history = history
        self.on_progress = on_progress
        self._graph = self._build_graph()

    def run(
        self,
        story_outline: StoryOutline,
        chapters: List[GeneratedChapter],
        title: str,
        user_input: str = "",
        abort: Optional[AbortSignal] = None,
    ) -> FinalDetailedOutline:
        previous = self.history.get(title)
        state: OutlineCycleState = {
            "story_outline": story_outline,
            "chapters": list(chapters),
            "title": title,
            "user_input": user_input,
            "abort": abort,
            "previous": previous,
            "version": (previous.final_version if previous else 0) + 1,
        }
        final_state = self._graph.invoke(state)
        return final_state["result"]

    def _build_graph(self):
        graph = StateGraph(OutlineCycleState)
        graph.add_node("generate", self._node_generate)
        graph.add_node("critique", self._node_critique)
        graph.add_node("merge", self._node_merge)
        graph.add_edge(START, "generate")
        graph.add_edge("generate", "critique")
        graph.add_edge("critique", "merge")
        graph.add_edge("merge", END)
        return graph.compile()

    def _report(self, message: str) -> None:
        logger.info(message)
        if self.on_progress is not None:
            self.on_progress(message)

    def _node_generate(self, state: OutlineCycleState) -> OutlineCycleState:
        version = state["version"]
        previous = state.get("previous")
        self._report(f"v{version} - 正在生成初稿...")
        draft = self.generator.generate(
            state["story_outline"],
            state["chapters"],
            state["title"],
            previous=previous.latest_entry if previous else None,
            user_input=state.get("user_input", ""),
            abort=state.get("abort"),
        )
        return {"draft": draft}

    def _node_critique(self, state: OutlineCycleState) -> OutlineCycleState:
        self._report(f"v{state['version']} - 正在评估稿件...")
        critique = self.generator.critique(
            state["draft"],
            state["story_outline"],
            state["title"],
            abort=state.get("abort"),
        )
        return {"critique": critique}

    def _node_merge(self, state: OutlineCycleState) -> OutlineCycleState:
        check_abort(state.get("abort"))
        version = state["version"]
        previous = state.get("previous")
        entry = OptimizationHistoryEntry(version=version, outline=state["draft"], critique=state["critique"])
        history: List[OptimizationHistoryEntry] = list(previous.optimization_history) if previous else []
        history.append(entry)

        result = FinalDetailedOutline(analysis=state["draft"], final_version=version, optimization_history=history)
        self.history.store(state["title"], result)
        self._report(f"v{version} - 评分 {state['critique'].overall_score:.1f}")
        return {"result": result}

