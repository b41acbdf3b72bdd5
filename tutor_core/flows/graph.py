"""LangGraph construction and node implementations.

moderate ──blocked──────────────────────────┐
   │ allowed                                 ▼
providers ──success──────────────────────▶ postprocess ──▶ END
   │ exhausted                               ▲
fallback ────────────────────────────────────┘
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from tutor_core.domain.exceptions import AllProvidersExhaustedError
from tutor_core.domain.models import (
    SOURCE_FALLBACK,
    SOURCE_MODERATION,
    Reply,
    latest_user_message,
    provider_source_label,
)
from tutor_core.flows.state import CompletionState
from tutor_core.infrastructure.logging.logger import logger

if TYPE_CHECKING:
    from tutor_core.agents.orchestrator import Orchestrator


def moderate_node(state: CompletionState, orchestrator: "Orchestrator") -> CompletionState:
    latest = latest_user_message(state["messages"])
    verdict = orchestrator.moderation.classify(latest.text if latest else "")
    state["verdict"] = verdict
    if not verdict.allowed:
        state["raw_text"] = verdict.canned_reply or ""
        state["source_label"] = SOURCE_MODERATION
        logger.info(
            "moderate_node.blocked",
            extra={"extra": {"category": verdict.category.value if verdict.category else None, "rule": verdict.rule_id}},
        )
    elif verdict.bypassed:
        logger.info("moderate_node.bypassed", extra={"extra": {"rule": verdict.rule_id}})
    return state


def providers_node(state: CompletionState, orchestrator: "Orchestrator") -> CompletionState:
    attempts, winner = orchestrator.run_chain(state["messages"], state["params"], state.get("cancel_event"))
    state["attempts"] = attempts
    if winner is not None:
        position, result, processed = winner
        state["raw_text"] = result.text
        state["processed"] = processed
        state["source_label"] = provider_source_label(position)
        state["model"] = result.model
    return state


def fallback_node(state: CompletionState, orchestrator: "Orchestrator") -> CompletionState:
    orchestrator.check_cancelled(state.get("cancel_event"))
    attempts = state.get("attempts") or []
    if not orchestrator.fallback_enabled:
        raise AllProvidersExhaustedError(
            "ALL_PROVIDERS_EXHAUSTED",
            "All providers failed and the local fallback is disabled",
            http_status=503,
            attempts=[{"provider": a.provider, "error": a.error.value if a.error else None} for a in attempts],
        )
    context = orchestrator.analyzer.analyze(state["messages"])
    state["context"] = context
    state["raw_text"] = orchestrator.generate_fallback(context)
    state["source_label"] = SOURCE_FALLBACK
    logger.info(
        "fallback_node.used",
        extra={"extra": {"attempts": len(attempts), **context.summary()}},
    )
    return state


def postprocess_node(state: CompletionState, orchestrator: "Orchestrator") -> CompletionState:
    processed = state.get("processed") or orchestrator.postprocessor.process(state.get("raw_text"))
    state["processed"] = processed
    state["reply"] = Reply(
        visible_text=processed.visible_text,
        source_label=state.get("source_label") or SOURCE_FALLBACK,
        reasoning_text=processed.reasoning_text,
        model=state.get("model"),
        attempts=tuple(state.get("attempts") or ()),
        verdict=state.get("verdict"),
        context=state.get("context"),
    )
    return state


def moderation_router(state: CompletionState) -> str:
    verdict = state.get("verdict")
    if verdict is not None and not verdict.allowed:
        return "postprocess"
    return "providers"


def providers_router(state: CompletionState) -> str:
    if state.get("processed") is not None:
        return "postprocess"
    return "fallback"


def build_graph(orchestrator: "Orchestrator") -> CompiledStateGraph:
    graph = StateGraph(CompletionState)
    graph.add_node("moderate", lambda s: moderate_node(s, orchestrator))
    graph.add_node("providers", lambda s: providers_node(s, orchestrator))
    graph.add_node("fallback", lambda s: fallback_node(s, orchestrator))
    graph.add_node("postprocess", lambda s: postprocess_node(s, orchestrator))
    graph.set_entry_point("moderate")
    graph.add_conditional_edges(
        "moderate", moderation_router, {"providers": "providers", "postprocess": "postprocess"}
    )
    graph.add_conditional_edges(
        "providers", providers_router, {"postprocess": "postprocess", "fallback": "fallback"}
    )
    graph.add_edge("fallback", "postprocess")
    graph.add_edge("postprocess", END)
    return graph.compile()
