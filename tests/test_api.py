import random

from fastapi.testclient import TestClient

from app.main import create_app
from crossmines.persistence import InMemoryPersistence

BASE = "/api/crossmines/post1"


def make_client(clock=None):
    app = create_app(persistence=InMemoryPersistence(), rng=random.Random(4), clock=clock or (lambda: 5_000_000))
    return TestClient(app)


def start(c, difficulty="MEDIUM", grid_size=8):
    c.get(f"{BASE}/state")
    c.post(f"{BASE}/configure", json={"difficulty": difficulty, "grid_size": grid_size})
    return c.post(f"{BASE}/start")


def test_state_creates_default_game():
    c = make_client()
    s = c.get(f"{BASE}/state").json()
    assert s["page"] == "home"
    assert s["grid_size"] == 10
    assert s["difficulty"] == "MEDIUM"
    assert s["board"] == []
    assert [b["display"] for b in s["best_times"]] == ["No record yet"] * 3


def test_mutations_on_unknown_game_404():
    c = make_client()
    r = c.post("/api/crossmines/nowhere/start")
    assert r.status_code == 404
    r = c.post("/api/crossmines/nowhere/reveal", json={"row": 0, "col": 0}, headers={"X-User-Id": "u1"})
    assert r.status_code == 404


def test_configure_start_and_board_shape():
    c = make_client()
    r = start(c, "HARD", 6)
    assert r.status_code == 200
    s = r.json()
    assert s["page"] == "game"
    assert s["bomb_count"] == 7
    assert len(s["board"]) == 6 and all(len(row) == 6 for row in s["board"])
    assert all(ch == "H" for row in s["board"] for ch in row)


def test_bad_configuration_400():
    c = make_client()
    c.get(f"{BASE}/state")
    r = c.post(f"{BASE}/configure", json={"difficulty": "NIGHTMARE", "grid_size": 8})
    assert r.status_code == 400
    r = c.post(f"{BASE}/configure", json={"difficulty": "EASY", "grid_size": 7})
    assert r.status_code == 400
    assert c.get(f"{BASE}/state").json()["page"] == "home"


def test_configure_during_game_is_rejected():
    c = make_client()
    start(c, "EASY", 8)
    r = c.post(f"{BASE}/configure", json={"difficulty": "HARD", "grid_size": 6})
    assert r.status_code == 400
    assert "invalid_transition" in r.text
    s = c.get(f"{BASE}/state").json()
    assert s["page"] == "game"
    assert s["difficulty"] == "EASY"
    assert s["grid_size"] == 8


def test_start_from_home_is_rejected():
    c = make_client()
    c.get(f"{BASE}/state")
    r = c.post(f"{BASE}/start")
    assert r.status_code == 400
    assert "invalid_transition" in r.text


def test_navigation():
    c = make_client()
    c.get(f"{BASE}/state")
    assert c.post(f"{BASE}/navigate", json={"page": "leaderboard"}).json()["page"] == "leaderboard"
    assert c.post(f"{BASE}/navigate", json={"page": "game"}).status_code == 400
    assert c.post(f"{BASE}/navigate", json={"page": "nowhere"}).status_code == 400


def test_reveal_flag_and_out_of_bounds():
    c = make_client()
    start(c)
    headers = {"X-User-Id": "u1"}
    r = c.post(f"{BASE}/flag", json={"row": 0, "col": 0})
    assert r.status_code == 200
    s = r.json()
    assert s["board"][0][0] == "F"
    assert s["flag_count"] == 1 and s["move_count"] == 1

    r = c.post(f"{BASE}/reveal", json={"row": 0, "col": 0}, headers=headers)
    assert r.json()["last_action"]["changed"] is False

    r = c.post(f"{BASE}/reveal", json={"row": 8, "col": 0}, headers=headers)
    assert r.status_code == 400
    assert "out of bounds" in r.text
    assert c.get(f"{BASE}/state").json()["move_count"] == 1


def test_hint_and_tick():
    now = {"t": 5_000_000}
    c = make_client(clock=lambda: now["t"])
    start(c)
    s = c.post(f"{BASE}/hint", headers={"X-User-Id": "u1"}).json()
    assert s["move_count"] == 3
    assert s["revealed_count"] >= 3
    assert all(ch != "B" for row in s["board"] for ch in row)
    now["t"] += 7_000
    assert c.post(f"{BASE}/tick").json()["time_elapsed"] == 7


def test_join_and_leaderboard():
    c = make_client()
    c.get(f"{BASE}/state")
    r = c.post(f"{BASE}/join", json={"username": "alice"}, headers={"X-User-Id": "u1"})
    assert "Welcome to Crossmines, alice!" in r.json()["announcement"]
    r = c.post(f"{BASE}/join", json={"username": "alice"}, headers={"X-User-Id": "u1"})
    assert r.json()["last_action"]["rejected"] == "already_joined"
    lb = c.get(f"{BASE}/leaderboard").json()
    assert lb["players"][0]["username"] == "alice"
    assert len(lb["best_times"]) == 3


def test_comment_commands_share_the_document():
    c = make_client()
    c.get(f"{BASE}/state")
    body = {"author_id": "u9", "username": "zed", "body": "/join"}
    assert c.post(f"{BASE}/comments", json=body).json()["reply"].startswith("@zed has joined")
    reply = c.post(f"{BASE}/comments", json=dict(body, body="/play hard")).json()["reply"]
    assert "HARD game" in reply
    assert c.post(f"{BASE}/comments", json=dict(body, body="just chatting")).json()["reply"] is None
    players = c.get(f"{BASE}/state").json()["players"]
    assert players[0]["username"] == "zed"
    assert players[0]["games"] == 1


def test_user_id_from_google_headers():
    c = make_client()
    c.get(f"{BASE}/state")
    g = {"X-Goog-Authenticated-User-Email": "accounts.google.com:alice@example.com"}
    c.post(f"{BASE}/join", json={"username": "alice"}, headers=g)
    players = c.get(f"{BASE}/state").json()["players"]
    assert players[0]["id"] == "alice@example.com"
