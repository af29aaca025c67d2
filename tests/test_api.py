import pytest
from fastapi.testclient import TestClient

from dashboard.config_loader import AppConfig, StorageConfig
from main import create_app


def _config(tmp_path):
    return AppConfig(storage=StorageConfig(data_dir=str(tmp_path)))


@pytest.fixture
def client(tmp_path):
    app = create_app(_config(tmp_path))
    with TestClient(app) as c:
        yield c


@pytest.fixture
def dashboard_id(client):
    response = client.post("/api/dashboards", json={"name": "Sales"})
    assert response.status_code == 200
    return response.json()["id"]


def _session_url(dashboard_id, suffix=""):
    return f"/api/dashboards/{dashboard_id}/session{suffix}"


def test_catalog_lists_every_kind(client):
    kinds = [item["kind"] for item in client.get("/api/catalog").json()]
    assert kinds == ["line", "bar", "pie", "kpi", "text"]


def test_dashboard_crud(client, dashboard_id):
    listed = client.get("/api/dashboards").json()
    assert [d["id"] for d in listed] == [dashboard_id]

    body = {**listed[0], "name": "Renamed"}
    assert client.put(f"/api/dashboards/{dashboard_id}", json=body).json()["name"] == "Renamed"
    assert client.put("/api/dashboards/other", json=body).status_code == 400

    assert client.delete(f"/api/dashboards/{dashboard_id}").status_code == 200
    assert client.delete(f"/api/dashboards/{dashboard_id}").status_code == 404
    assert client.get(_session_url(dashboard_id)).status_code == 404


def test_new_session_is_fresh_then_seeded_once(client, dashboard_id):
    session = client.get(_session_url(dashboard_id)).json()
    assert session["widgets"] == []
    assert session["phase"] == "fresh"

    first = client.post(_session_url(dashboard_id, "/init")).json()
    assert first["seeded"] is True
    assert len(first["widgets"]) == 4
    assert first["flags"]["has_changes"] is False

    second = client.post(_session_url(dashboard_id, "/init")).json()
    assert second["seeded"] is False


def test_edit_flow_with_undo_and_redo(client, dashboard_id):
    client.post(_session_url(dashboard_id, "/init"))
    client.post(_session_url(dashboard_id, "/edit-mode"), json={"enabled": True})

    added = client.post(_session_url(dashboard_id, "/widgets"), json={"kind": "text", "title": "Notes"}).json()
    new_id = added["widget"]["id"]
    assert added["widget"]["title"] == "Notes"
    assert len(added["widgets"]) == 5
    assert all(any(e["widget_id"] == new_id for e in entries) for entries in added["layout"].values())

    edited = client.patch(_session_url(dashboard_id, f"/widgets/{new_id}"), json={"title": "Memo"}).json()
    assert edited["changed"] is True
    assert edited["undo_depth"] == 2

    undone = client.post(_session_url(dashboard_id, "/undo")).json()
    assert undone["applied"] is True
    assert next(w for w in undone["widgets"] if w["id"] == new_id)["title"] == "Notes"

    redone = client.post(_session_url(dashboard_id, "/redo")).json()
    assert next(w for w in redone["widgets"] if w["id"] == new_id)["title"] == "Memo"
    assert redone["can_redo"] is False
    assert redone["phase"] == "user_owned"


def test_widget_errors(client, dashboard_id):
    client.post(_session_url(dashboard_id, "/init"))

    assert client.post(_session_url(dashboard_id, "/widgets"), json={"kind": "gauge"}).status_code == 422
    assert client.patch(_session_url(dashboard_id, "/widgets/widget-1"), json={"title": "  "}).status_code == 422
    assert client.patch(_session_url(dashboard_id, "/widgets/nope"), json={"title": "X"}).status_code == 404
    assert client.delete(_session_url(dashboard_id, "/widgets/nope")).status_code == 404
    assert client.post(_session_url(dashboard_id, "/widgets/nope/duplicate")).status_code == 404

    session = client.get(_session_url(dashboard_id)).json()
    assert session["undo_depth"] == 0
    assert session["flags"]["has_been_modified"] is False


def test_patch_can_clear_data_source(client, dashboard_id):
    created = client.post(
        _session_url(dashboard_id, "/widgets"),
        json={"kind": "bar", "data_source_ref": "sales-db"},
    ).json()["widget"]

    url = _session_url(dashboard_id, f"/widgets/{created['id']}")
    assert client.patch(url, json={"title": created["title"]}).json()["changed"] is False
    cleared = client.patch(url, json={"data_source_ref": None}).json()
    assert cleared["changed"] is True
    assert cleared["widgets"][0]["data_source_ref"] is None


def test_duplicate_and_delete(client, dashboard_id):
    client.post(_session_url(dashboard_id, "/init"))

    clone = client.post(_session_url(dashboard_id, "/widgets/widget-3/duplicate")).json()
    assert clone["widget"]["title"] == "Expense breakdown (copy)"

    remaining = client.delete(_session_url(dashboard_id, f"/widgets/{clone['widget']['id']}")).json()
    assert [w["id"] for w in remaining["widgets"]] == ["widget-1", "widget-2", "widget-3", "widget-4"]
    assert remaining["undo_depth"] == 2


def test_layout_change_is_one_undo_entry(client, dashboard_id):
    client.post(_session_url(dashboard_id, "/init"))
    layout = client.get(_session_url(dashboard_id)).json()["layout"]
    # the grid engine reports the widget key as "i"
    moved = {
        bp: [{"i": e["widget_id"], "x": e["x"], "y": e["y"], "w": e["w"], "h": e["h"]} for e in entries]
        for bp, entries in layout.items()
    }
    moved["lg"][3]["x"] = 8

    ignored = client.put(_session_url(dashboard_id, "/layout"), json={"layouts": moved}).json()
    assert ignored["changed"] is False

    client.post(_session_url(dashboard_id, "/edit-mode"), json={"enabled": True})
    applied = client.put(_session_url(dashboard_id, "/layout"), json={"layouts": moved}).json()
    assert applied["changed"] is True
    assert applied["undo_depth"] == 1
    assert applied["layout"]["lg"][3]["x"] == 8

    moved["lg"][0]["w"] = 0
    assert client.put(_session_url(dashboard_id, "/layout"), json={"layouts": moved}).status_code == 422


def test_grid_render_uses_viewport_width(client, dashboard_id):
    client.post(_session_url(dashboard_id, "/init"))

    grid = client.get(_session_url(dashboard_id, "/grid"), params={"width": 500}).json()

    assert grid["breakpoint"] == "xs"
    assert grid["columns"] == 4
    assert grid["is_draggable"] is False
    assert [item["widget"]["id"] for item in grid["items"]][0] == "widget-1"


def test_reset_returns_to_fresh(client, dashboard_id):
    client.post(_session_url(dashboard_id, "/widgets"), json={"kind": "pie"})

    reset = client.post(_session_url(dashboard_id, "/reset")).json()

    assert reset["widgets"] == []
    assert reset["phase"] == "fresh"
    assert reset["can_undo"] is False
    assert client.post(_session_url(dashboard_id, "/init")).json()["seeded"] is True


def test_save_clears_changes_and_restores_in_new_app(tmp_path):
    with TestClient(create_app(_config(tmp_path))) as first:
        dashboard_id = first.post("/api/dashboards", json={"name": "Ops"}).json()["id"]
        first.post(_session_url(dashboard_id, "/widgets"), json={"kind": "kpi", "title": "Uptime"})

        saved = first.post(_session_url(dashboard_id, "/save")).json()
        assert saved["result"]["ok"] is True
        assert saved["flags"]["has_changes"] is False
        assert len(first.get(f"/api/dashboards/{dashboard_id}/history").json()) == 1

    with TestClient(create_app(_config(tmp_path))) as second:
        session = second.get(_session_url(dashboard_id)).json()
        assert [w["title"] for w in session["widgets"]] == ["Uptime"]
        assert session["phase"] == "seeded"
        assert session["undo_depth"] == 0
        assert second.post(_session_url(dashboard_id, "/init")).json()["seeded"] is False


def test_unknown_dashboard_session_is_404(client):
    assert client.get(_session_url("missing")).status_code == 404
    assert client.post(_session_url("missing", "/save")).status_code == 404
    assert client.get("/api/dashboards/missing/history").status_code == 404
