import logging

from fastapi.testclient import TestClient

from flowsync.server.main import app
from flowsync.server.state import canvas_state
from flowsync.server.events.event_emitter import global_events


class TestCanvasRoutes:

    def setup_method(self):
        canvas_state.reset()
        self.client = TestClient(app)

    def teardown_method(self):
        canvas_state.reset()

    def test_health(self):
        assert self.client.get("/health").json() == {"status": "ok"}

    def test_canvas_lists_groups_before_children(self):
        body = self.client.get("/api/canvas").json()
        ids = [n["id"] for n in body["nodes"]]
        assert ids.index("review") < ids.index("loop")

        loop = next(n for n in body["nodes"] if n["id"] == "loop")
        assert loop["parentId"] == "review"
        assert loop["extent"] == "parent"
        group = next(n for n in body["nodes"] if n["id"] == "review")
        assert group["type"] == "GroupNode"

    def test_canvas_nodes_carry_ports(self):
        body = self.client.get("/api/canvas").json()
        classify = next(n for n in body["nodes"] if n["id"] == "classify")
        text_port = next(p for p in classify["data"]["inputs"] if p["property"] == "text")
        assert text_port["connected"] is True
        assert classify["data"]["title"] == "LLM Category"

    def test_create_move_and_delete_node(self):
        created = self.client.post("/api/nodes", json={
            "type": "Filter", "id": "filter", "position": {"x": 10, "y": 20},
        })
        assert created.status_code == 201

        moved = self.client.put("/api/nodes/filter/position", json={"x": 50, "y": 60})
        assert moved.status_code == 204
        assert canvas_state.engine.workflow.get_node("filter").position == (50, 60)

        deleted = self.client.delete("/api/nodes/filter")
        assert deleted.json()["removedNodes"] == ["filter"]

    def test_unknown_node_type_is_a_bad_request(self):
        response = self.client.post("/api/nodes", json={"type": "Nope"})
        assert response.status_code == 400

    def test_missing_node_is_not_found(self):
        assert self.client.delete("/api/nodes/ghost").status_code == 404
        assert self.client.patch("/api/nodes/ghost", json={"label": "x"}).status_code == 404

    def test_update_node(self):
        response = self.client.patch("/api/nodes/text", json={
            "label": "Question", "portLabels": {"text": "Prompt"},
        })
        assert response.status_code == 200
        node = canvas_state.engine.workflow.get_node("text")
        assert node.label == "Question"
        assert node.port_labels == {"text": "Prompt"}

    def test_invalid_connection_is_unprocessable(self):
        response = self.client.post("/api/edges", json={
            "source": "text", "target": "classify", "sourceHandle": "text", "targetHandle": "text",
        })
        assert response.status_code == 422
        assert response.json()["detail"]["errors"]

    def test_connect_and_remove_edge(self):
        response = self.client.post("/api/edges", json={
            "source": "text", "target": "classify", "sourceHandle": "text", "targetHandle": "model",
            "id": "edge-model",
        })
        assert response.status_code == 201
        assert self.client.delete("/api/edges/edge-model").status_code == 204
        assert self.client.delete("/api/edges/edge-model").status_code == 404

    def test_group_and_ungroup(self):
        created = self.client.post("/api/groups", json={"nodeIds": ["text", "classify"]}).json()
        group_id = created["groupId"]
        assert created["nodeIds"] == ["text", "classify"]

        removed = self.client.delete(f"/api/groups/{group_id}")
        assert removed.status_code == 200
        assert canvas_state.engine.workflow.parent_id_of("text") is None

    def test_clipboard_round_trip(self):
        copied = self.client.post("/api/clipboard/copy", json={"nodeIds": ["loop", "collect"]}).json()
        assert copied == {"count": 2, "edgeCount": 1, "operation": "copy"}

        pasted = self.client.post("/api/clipboard/paste", json={"x": 100, "y": 100, "parentId": "review"}).json()
        assert len(pasted["nodeIds"]) == 2
        assert len(pasted["edgeIds"]) == 1
        assert set(pasted["idMap"]) == {"loop", "collect"}

    def test_undo_redo(self):
        self.client.delete("/api/nodes/text")
        assert self.client.get("/api/history").json()["canUndo"] is True

        undone = self.client.post("/api/history/undo").json()
        assert undone["applied"] is True
        assert undone["history"]["canRedo"] is True
        assert "text" in [n["id"] for n in undone["canvas"]["nodes"]]

        redone = self.client.post("/api/history/redo").json()
        assert "text" not in [n["id"] for n in redone["canvas"]["nodes"]]
        assert self.client.post("/api/history/redo").json()["applied"] is False

    def test_workflow_export_and_import_reports_pruning(self):
        exported = self.client.get("/api/workflow").json()
        exported["edges"].append({"id": "broken", "from": "text", "to": "ghost", "fromProperty": "text"})

        imported = self.client.put("/api/workflow", json=exported).json()
        assert imported["pruned"]["count"] == 1
        assert imported["pruned"]["edges"][0]["id"] == "broken"
        assert self.client.get("/api/history").json()["hasUnsavedChanges"] is False

    def test_import_with_unknown_type_is_rejected(self):
        response = self.client.put("/api/workflow", json={"nodes": [{"id": "x", "type": "Nope"}]})
        assert response.status_code == 400

    def test_node_types(self):
        types = {t["type"]: t for t in self.client.get("/api/node-types").json()}
        assert "Group" in types
        merge = types["Merge"]
        assert merge["inputs"][0]["isMulti"] is True

    def test_history_changes_are_broadcast(self):
        events = []

        def listener(event, payload):
            events.append((event, payload))

        global_events.on_event(listener)
        try:
            self.client.post("/api/nodes", json={"type": "Merge", "id": "merge"})
        finally:
            global_events.off_event(listener)

        assert ("history", True) in [(e, p["canUndo"]) for e, p in events if e == "history"]

    def test_startup_logs_the_served_workflow(self, caplog):
        with caplog.at_level(logging.INFO, logger="flowsync.server.main"):
            with TestClient(app) as client:
                assert client.get("/health").status_code == 200
        assert "Serving workflow" in caplog.text
