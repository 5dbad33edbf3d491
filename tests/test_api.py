from fastapi.testclient import TestClient

from dronevis.main import app

client = TestClient(app)

_PLAN = {
    "totalCost": 8.0,
    "totalMoves": 4,
    "dronePaths": [
        {"droneId": "a", "deliveries": [
            {"deliveryId": 1, "flightPath": [{"lat": 55.94, "lng": -3.19}, {"lat": 55.941, "lng": -3.19},
                                             {"lat": 55.942, "lng": -3.19}]},
        ]},
        {"droneId": "b", "deliveries": [
            {"deliveryId": 2, "flightPath": [{"lat": 55.95, "lng": -3.18}, {"lat": 55.951, "lng": -3.18}]},
            {"deliveryId": None, "flightPath": [{"lat": 55.951, "lng": -3.18}, {"lat": 55.95, "lng": -3.18}]},
        ]},
    ],
}


def _receive_until(ws, predicate, limit=200):
    for _ in range(limit):
        msg = ws.receive_json()
        if predicate(msg):
            return msg
    raise AssertionError("expected message never arrived")


def test_health_and_config():
    assert client.get("/health").json()["status"] == "ok"
    cfg = client.get("/config").json()
    assert cfg["speed"] == {"min": 0.5, "max": 5.0, "step": 0.5, "default": 1.0}
    assert cfg["sampler"]["stride"] == 15


def test_summary_endpoint():
    body = client.post("/summary", json=_PLAN).json()
    assert [p["id"] for p in body["deliveryPoints"]] == ["1", "2"]
    assert body["metrics"]["droneCount"] == 2
    assert client.post("/summary", json={"dronePaths": "x"}).status_code == 400


def test_progress_ingestion_drops_malformed_events():
    resp = client.post("/progress", json=[
        {"type": "node_explored", "position": {"lat": 1.0, "lng": 2.0}},
        {"type": "not_a_type"},
        {"message": "no type"},
    ])
    assert resp.status_code == 200
    assert resp.json()["accepted"] == 1


def test_viewer_socket_plays_a_plan_to_completion():
    with client.websocket_connect("/ws") as ws:
        meta = ws.receive_json()
        assert meta["type"] == "meta"
        assert meta["status"] == "idle"
        assert meta["hasPlan"] is False

        ws.send_json({"type": "load_plan", "plan": _PLAN})
        meta = _receive_until(ws, lambda m: m["type"] == "meta" and m["hasPlan"])
        assert [p["id"] for p in meta["deliveryPoints"]] == ["1", "2"]

        ws.send_json({"type": "set_speed", "speed": 5})
        meta = _receive_until(ws, lambda m: m["type"] == "meta" and m["speed"] == 5.0)

        ws.send_json({"type": "start"})
        last = _receive_until(ws, lambda m: m["type"] == "state" and m["done"])
        assert last["status"] == "finished"
        assert all(d["completed"] for d in last["drones"])
        assert [d["droneId"] for d in last["drones"]] == ["a", "b"]
        assert len(last["drones"][1]["trail"]) == 4

        finished = _receive_until(ws, lambda m: m["type"] == "meta" and m["status"] == "finished")
        assert finished["hasPlan"] is True


def test_viewer_socket_reports_bad_input():
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "warp"})
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "load_plan", "plan": {"totalCost": 1, "dronePaths": 5}})
        err = ws.receive_json()
        assert err["type"] == "error"
        assert "invalid plan" in err["message"]
