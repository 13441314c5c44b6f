"""
Canvas REST routes.

Every mutation goes through the engine and answers with the fresh flat
projection, so the renderer can replace its state wholesale.

All routes are mounted under /api by main.py.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from fastapi import APIRouter, Body, HTTPException, Response
from pydantic import BaseModel

from flowsync.core.Errors import EdgeNotFound, NodeNotFound, StructuralError
from flowsync.core.GraphPrimitives import Edge
from flowsync.core.Node import WorkflowNode
from flowsync.core.Types import EdgeMode
from flowsync.core.PortResolver import resolve_metadata
from flowsync.server.serializers.workflow_serializer import serialize_canvas
from flowsync.server.state import canvas_state

router = APIRouter()


@contextmanager
def _engine_errors() -> Iterator[None]:
    try:
        yield
    except (NodeNotFound, EdgeNotFound) as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except StructuralError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _canvas() -> Dict[str, Any]:
    return serialize_canvas(canvas_state.engine.flat)


# ── GET /canvas ───────────────────────────────────────────────────────────────

@router.get("/canvas")
async def get_canvas() -> Dict[str, Any]:
    return _canvas()


# ── GET /workflow ─────────────────────────────────────────────────────────────

@router.get("/workflow")
async def get_workflow() -> Dict[str, Any]:
    return canvas_state.engine.to_portable()


# ── PUT /workflow ─────────────────────────────────────────────────────────────
# Import: deserialize, prune, reset history. The prune report lets the UI
# show what was repaired.

@router.put("/workflow")
async def put_workflow(data: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    with _engine_errors():
        flat = canvas_state.engine.load_portable(data)
    return {"canvas": _canvas(), "pruned": flat.report.to_dict()}


# ── DELETE /workflow ──────────────────────────────────────────────────────────

@router.delete("/workflow")
async def clear_workflow() -> Dict[str, Any]:
    canvas_state.engine.clear()
    return _canvas()


# ── POST /workflow/saved ──────────────────────────────────────────────────────

@router.post("/workflow/saved", status_code=204)
async def mark_saved() -> Response:
    canvas_state.engine.mark_saved()
    return Response(status_code=204)


# ── POST /nodes ───────────────────────────────────────────────────────────────

class CreateNodeBody(BaseModel):
    type: str
    id: Optional[str] = None
    parentId: Optional[str] = None
    position: Optional[Dict[str, float]] = None
    width: Optional[float] = None
    height: Optional[float] = None
    label: Optional[str] = None
    params: Optional[Dict[str, Any]] = None


@router.post("/nodes", status_code=201)
async def create_node(body: CreateNodeBody) -> Dict[str, Any]:
    with _engine_errors():
        node = WorkflowNode.create_node(
            body.type,
            body.id,
            position=body.position,
            width=body.width,
            height=body.height,
            label=body.label,
            params=body.params,
        )
        canvas_state.engine.add_node(node, body.parentId)
    return {"id": node.id, "canvas": _canvas()}


# ── PATCH /nodes/:id ──────────────────────────────────────────────────────────

class UpdateNodeBody(BaseModel):
    label: Optional[str] = None
    params: Optional[Dict[str, Any]] = None
    position: Optional[Dict[str, float]] = None
    width: Optional[float] = None
    height: Optional[float] = None
    portLabels: Optional[Dict[str, str]] = None
    collapsed: Optional[bool] = None


@router.patch("/nodes/{node_id}")
async def update_node(node_id: str, body: UpdateNodeBody) -> Dict[str, Any]:
    changes = body.model_dump(exclude_unset=True)
    if "portLabels" in changes:
        changes["port_labels"] = changes.pop("portLabels")
    with _engine_errors():
        canvas_state.engine.update_node(node_id, **changes)
    return _canvas()


# ── PUT /nodes/:id/position ───────────────────────────────────────────────────

class PositionBody(BaseModel):
    x: float
    y: float


@router.put("/nodes/{node_id}/position", status_code=204)
async def set_node_position(node_id: str, body: PositionBody) -> Response:
    with _engine_errors():
        canvas_state.engine.move_node(node_id, (body.x, body.y))
    return Response(status_code=204)


# ── DELETE /nodes/:id ─────────────────────────────────────────────────────────

@router.delete("/nodes/{node_id}")
async def delete_node(node_id: str) -> Dict[str, Any]:
    with _engine_errors():
        removed_ids, removed_edges = canvas_state.engine.remove_node(node_id)
    return {
        "removedNodes": removed_ids,
        "removedEdges": [e.id for e in removed_edges],
        "canvas": _canvas(),
    }


# ── POST /edges ───────────────────────────────────────────────────────────────
# Renderer-style connection: handles are the port properties. No handles
# means a control edge.

class EdgeBody(BaseModel):
    source: str
    target: str
    id: Optional[str] = None
    sourceHandle: Optional[str] = None
    targetHandle: Optional[str] = None
    condition: Optional[str] = None
    weight: Optional[float] = None
    mode: Optional[EdgeMode] = None


@router.post("/edges", status_code=201)
async def add_edge(body: EdgeBody) -> Dict[str, Any]:
    edge = Edge.create(
        body.source,
        body.target,
        body.sourceHandle,
        body.targetHandle,
        id=body.id,
        condition=body.condition,
        weight=body.weight,
        mode=body.mode.value if body.mode else None,
    )
    with _engine_errors():
        result = canvas_state.engine.connect(edge)
    if not result.valid:
        raise HTTPException(status_code=422, detail={"errors": result.errors})
    return {"id": edge.id, "canvas": _canvas()}


# ── DELETE /edges/:id ─────────────────────────────────────────────────────────

@router.delete("/edges/{edge_id}", status_code=204)
async def delete_edge(edge_id: str) -> Response:
    with _engine_errors():
        canvas_state.engine.remove_edge(edge_id)
    return Response(status_code=204)


# ── POST /groups ──────────────────────────────────────────────────────────────

class GroupBody(BaseModel):
    nodeIds: List[str]
    type: str = "Group"
    label: Optional[str] = None


def _group_change(change) -> Dict[str, Any]:
    return {
        "groupId": change.group_id,
        "nodeIds": change.node_ids,
        "droppedEdges": [e.id for e in change.dropped_edges],
        "canvas": _canvas(),
    }


@router.post("/groups", status_code=201)
async def create_group(body: GroupBody) -> Dict[str, Any]:
    with _engine_errors():
        change = canvas_state.engine.create_group(body.nodeIds, body.type, body.label)
    return _group_change(change)


# ── DELETE /groups/:id ────────────────────────────────────────────────────────

@router.delete("/groups/{group_id}")
async def ungroup(group_id: str) -> Dict[str, Any]:
    with _engine_errors():
        change = canvas_state.engine.ungroup(group_id)
    return _group_change(change)


# ── POST /clipboard/copy | cut | paste ────────────────────────────────────────

class SelectionBody(BaseModel):
    nodeIds: List[str]


def _clipboard_payload(snapshot) -> Dict[str, Any]:
    return {
        "count": len(snapshot.nodes) if snapshot else 0,
        "edgeCount": len(snapshot.edges) if snapshot else 0,
        "operation": snapshot.operation.value if snapshot else None,
    }


@router.post("/clipboard/copy")
async def copy_nodes(body: SelectionBody) -> Dict[str, Any]:
    with _engine_errors():
        snapshot = canvas_state.engine.copy(body.nodeIds)
    return _clipboard_payload(snapshot)


@router.post("/clipboard/cut")
async def cut_nodes(body: SelectionBody) -> Dict[str, Any]:
    with _engine_errors():
        snapshot = canvas_state.engine.cut(body.nodeIds)
    return {**_clipboard_payload(snapshot), "canvas": _canvas()}


class PasteBody(BaseModel):
    x: float
    y: float
    parentId: Optional[str] = None


@router.post("/clipboard/paste")
async def paste_nodes(body: PasteBody) -> Dict[str, Any]:
    with _engine_errors():
        result = canvas_state.engine.paste((body.x, body.y), body.parentId)
    return {
        "nodeIds": [n.id for n in result.nodes],
        "edgeIds": [e.id for e in result.edges],
        "idMap": result.id_map,
        "canvas": _canvas(),
    }


# ── History ───────────────────────────────────────────────────────────────────

def _history() -> Dict[str, Any]:
    engine = canvas_state.engine
    return {
        **canvas_state.history_payload(),
        "size": len(engine.history),
        "index": engine.history.current_index,
        "hasUnsavedChanges": engine.has_unsaved_changes,
    }


@router.get("/history")
async def get_history() -> Dict[str, Any]:
    return _history()


@router.post("/history/undo")
async def undo() -> Dict[str, Any]:
    with _engine_errors():
        flat = canvas_state.engine.undo()
    return {"applied": flat is not None, "history": _history(), "canvas": _canvas()}


@router.post("/history/redo")
async def redo() -> Dict[str, Any]:
    with _engine_errors():
        flat = canvas_state.engine.redo()
    return {"applied": flat is not None, "history": _history(), "canvas": _canvas()}


# ── GET /node-types ───────────────────────────────────────────────────────────

@router.get("/node-types")
async def get_node_types() -> List[Dict[str, Any]]:
    return [resolve_metadata(t).to_dict() for t in WorkflowNode.registered_types()]
