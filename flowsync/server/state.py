"""
CanvasState: the single engine instance served by this process.

Seeds a small demo workflow on startup so the canvas has something to show
on first load, and forwards the engine's history and repair signals to the
event emitter.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from flowsync.config import Settings
from flowsync.core.Flattener import PruneReport
from flowsync.core.GraphPrimitives import Edge
from flowsync.core.History import HistoryState
from flowsync.core.Node import Workflow, WorkflowNode
from flowsync.core.SyncEngine import SyncEngine
from flowsync.server.events.event_emitter import global_events


class CanvasState:
    """Holds the engine and relays its signals."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings: Settings = settings or Settings.from_env()
        self.engine: SyncEngine = SyncEngine.from_settings(self.settings, self._demo_workflow())
        self.engine.on_history_change(self._on_history)
        self.engine.on_repair(self._on_repair)

    # ── Demo graph ──────────────────────────────────────────────────────────

    @staticmethod
    def _demo_workflow() -> Workflow:
        text = WorkflowNode.create_node("TextArea", "text", position=(0, 0),
                                        params={"text": "Where is my order?"})
        classify = WorkflowNode.create_node("LlmCategory", "classify", position=(260, 0),
                                            params={"categories": ["billing", "shipping"]})

        # ── Nested group ───────────────────────────────────────────────────
        loop = WorkflowNode.create_node("Loop", "loop", position=(40, 60))
        collect = WorkflowNode.create_node("Collector", "collect", position=(260, 60))
        group = WorkflowNode.create_node(
            "Group", "review", position=(0, 200), width=480, height=180, label="Review",
            nodes=[loop, collect],
            edges=[Edge.data("loop", "collect", "item", "items", id="edge-loop-collect")],
        )

        return Workflow(
            nodes=[text, classify, group],
            edges=[Edge.data("text", "classify", "text", "text", id="edge-text-classify")],
            name="Demo Workflow",
        )

    def reset(self) -> None:
        """Reload the demo workflow, dropping history and clipboard."""
        self.engine.load(self._demo_workflow())

    # ── Signals ─────────────────────────────────────────────────────────────

    def history_payload(self) -> Dict[str, Any]:
        return {
            "canUndo": self.engine.history.can_undo,
            "canRedo": self.engine.history.can_redo,
        }

    def _on_history(self, state: HistoryState) -> None:
        global_events.fire("history", {"canUndo": state.can_undo, "canRedo": state.can_redo})

    def _on_repair(self, report: PruneReport) -> None:
        global_events.fire("repair", report.to_dict())


canvas_state = CanvasState()
