from conftest import FOUR_SUBJECTS, headers_for


def _finish_exam(client, headers, correct):
    sid = client.post("/cbt/sessions", headers=headers, json={"subjects": FOUR_SUBJECTS}).json()["id"]
    questions = client.post(f"/cbt/sessions/{sid}/start", headers=headers).json()["questions"]
    answers = {q["id"]: "A" for q in questions[:correct]}
    return client.post(f"/cbt/sessions/{sid}/complete", headers=headers, json={"answers": answers}).json()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_register_login_and_profile(client):
    r = client.post("/register", json={"email": "Ada@Example.com", "password": "secret1", "nickname": "Ada"})
    assert r.status_code == 201
    user = r.json()
    assert user["email"] == "ada@example.com"
    assert user["is_premium"] is False

    dup = client.post("/register", json={"email": "ada@example.com", "password": "secret1", "nickname": "Ada"})
    assert dup.status_code == 400

    bad = client.post("/token", data={"username": "ada@example.com", "password": "wrong"})
    assert bad.status_code == 401

    r = client.post("/token", data={"username": "ada@example.com", "password": "secret1"})
    assert r.status_code == 200
    token = r.json()["access_token"]
    assert token == user["id"]

    me = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["nickname"] == "Ada"


def test_unknown_token_is_rejected(client):
    assert client.get("/me", headers={"Authorization": "Bearer nobody"}).status_code == 401


def test_my_stats(client, premium_headers):
    empty = client.get("/stats/me", headers=premium_headers).json()
    assert empty["completed_sessions"] == 0
    assert empty["average_score"] == 0.0
    assert empty["badges"] == []

    _finish_exam(client, premium_headers, correct=62)
    _finish_exam(client, premium_headers, correct=40)

    stats = client.get("/stats/me", headers=premium_headers).json()
    assert stats["completed_sessions"] == 2
    assert stats["tests_completed"] == 2
    assert stats["total_score"] == 102
    assert stats["best_score"] == 78
    assert stats["average_score"] == 64.0
    assert [b["title"] for b in stats["badges"]] == ["Test Taker"]


def test_leaderboard(client, make_user):
    strong = headers_for(make_user(premium=True))
    weak = headers_for(make_user(premium=True))
    idle = headers_for(make_user(premium=True))

    _finish_exam(client, strong, correct=70)
    _finish_exam(client, weak, correct=10)

    board = client.get("/stats/leaderboard?limit=5", headers=idle).json()
    assert [row["total_score"] for row in board] == [70, 10]
    assert [row["rank"] for row in board] == [1, 2]
    assert not any(row["is_me"] for row in board)

    mine = client.get("/stats/leaderboard", headers=strong).json()
    assert mine[0]["is_me"] is True


def test_database_url_falls_back_to_package_sqlite(monkeypatch):
    from cbtprep import config

    monkeypatch.setattr(config, "DATABASE_URL", "  ")
    assert config.database_url().startswith("sqlite:///")
    assert config.database_url().endswith("app.db")
    monkeypatch.setattr(config, "DATABASE_URL", "postgresql://u:p@db/cbt")
    assert config.database_url() == "postgresql://u:p@db/cbt"


def test_unhashed_password_fails_login(client, make_user):
    make_user(email="raw@example.com")
    r = client.post("/token", data={"username": "raw@example.com", "password": "not-a-real-hash"})
    assert r.status_code == 401
