import json

import pytest

from services.rng import hash_seed


@pytest.fixture
def alice(client, player, login):
    return login("alice", "secret99")


@pytest.fixture
def boss(client, owner, login):
    return login("owner", "hunter22")


def test_health(client):
    assert client.get("/healthz").json() == {"ok": True}


class TestAuth:
    def test_register_login_me(self, client, login):
        r = client.post("/auth/register", json={
            "username": "zoe", "password": "secret99", "confirm_password": "secret99"})
        assert r.status_code == 201
        assert r.json()["rank"] == "owner"
        assert "password_hash" not in r.json()

        headers = login("zoe", "secret99")
        me = client.get("/auth/me", headers=headers).json()
        assert me["username"] == "zoe"
        assert me["balance"] == 1000.0

    def test_register_errors(self, client, owner):
        r = client.post("/auth/register", json={
            "username": "owner", "password": "secret99", "confirm_password": "secret99"})
        assert r.status_code == 409
        r = client.post("/auth/register", json={
            "username": "bob", "password": "abc", "confirm_password": "abc"})
        assert r.status_code == 400

    def test_bad_login(self, client, player):
        r = client.post("/auth/login", json={"username": "alice", "password": "nope"})
        assert r.status_code == 401

    def test_requires_token(self, client):
        assert client.get("/auth/me").status_code == 401
        assert client.get("/auth/me", headers={"Authorization": "Bearer junk"}).status_code == 401

    def test_logout(self, client, alice):
        assert client.post("/auth/logout", headers=alice).json() == {"ok": True}
        assert client.get("/auth/me", headers=alice).status_code == 401

    def test_change_password(self, client, alice, login):
        r = client.post("/auth/password", headers=alice, json={
            "current_password": "secret99", "new_password": "better99", "confirm_password": "better99"})
        assert r.status_code == 200
        login("alice", "better99")


class TestRounds:
    def test_full_round(self, client, alice):
        r = client.post("/rounds/start", headers=alice, json={"bet": 100})
        assert r.status_code == 200
        body = r.json()
        round_id = body["round_id"]
        assert body["state"] == {"status": "active", "bet": 100.0, "progress": 0.0,
                                 "multiplier": 1.0, "tick": 0}
        assert len(body["parameters"]["server_seed_hash"]) == 64
        assert "server_seed" not in body["parameters"]
        assert client.get("/auth/me", headers=alice).json()["balance"] == 900.0

        r = client.post(f"/rounds/{round_id}/advance", headers=alice, json={"ticks": 250})
        assert r.json()["state"]["multiplier"] == pytest.approx(1.75)

        r = client.post(f"/rounds/{round_id}/cashout", headers=alice)
        assert r.status_code == 200
        outcome = r.json()["outcome"]
        assert outcome["status"] == "cashed_out"
        assert outcome["payout"] == pytest.approx(175.0)
        assert hash_seed(outcome["server_seed"]) == body["parameters"]["server_seed_hash"]
        assert r.json()["balance"] == pytest.approx(1075.0)

        assert client.post(f"/rounds/{round_id}/cashout", headers=alice).status_code == 409
        assert client.post(f"/rounds/{round_id}/advance", headers=alice, json={}).status_code == 409
        assert client.get(f"/rounds/{round_id}", headers=alice).json()["outcome"]["won"] is True

        history = client.get("/players/me/history", headers=alice).json()["games"]
        assert history[0]["round_id"] == round_id

    @pytest.mark.parametrize("bet", [0, -10, 1000, 5000])
    def test_invalid_bet(self, client, alice, bet):
        r = client.post("/rounds/start", headers=alice, json={"bet": bet})
        assert r.status_code == 400

    def test_one_round_at_a_time(self, client, alice):
        assert client.post("/rounds/start", headers=alice, json={"bet": 1}).status_code == 200
        assert client.post("/rounds/start", headers=alice, json={"bet": 1}).status_code == 409

    def test_unknown_round(self, client, alice):
        assert client.get("/rounds/nope", headers=alice).status_code == 404
        assert client.post("/rounds/nope/cashout", headers=alice).status_code == 404

    def test_verify(self, client):
        r = client.post("/rounds/verify", json={
            "server_seed": "server", "server_seed_hash": hash_seed("server"), "client_seed": "client"})
        assert r.status_code == 200
        assert r.json()["commitment_ok"] is True
        assert r.json()["final"]["status"] in ("orphaned", "completed")


def test_leaderboard(client, player):
    leaders = client.get("/players/leaderboard?limit=5").json()["leaders"]
    assert {e["username"] for e in leaders} == {"owner", "alice"}
    assert [e["position"] for e in leaders] == [1, 2]
    assert all(e["balance"] == 1000.0 for e in leaders)


class TestAdmin:
    def test_console(self, client, boss, player, store):
        r = client.post("/admin/command", headers=boss, json={"command": ".give alice $500"})
        assert r.status_code == 200
        assert store.get_account("alice").balance == 1500.0
        r = client.post("/admin/command", headers=boss, json={"command": ".frobnicate"})
        assert r.status_code == 400

    def test_endpoints(self, client, boss, player, store):
        assert client.post("/admin/give", headers=boss, json={"player": "alice", "amount": 10}).status_code == 200
        assert client.post("/admin/remove", headers=boss, json={"player": "alice", "amount": "$5"}).status_code == 200
        assert store.get_account("alice").balance == 1005.0
        assert client.post("/admin/rank", headers=boss, json={"player": "alice", "rank": "elite"}).status_code == 200
        assert client.post("/admin/give", headers=boss, json={"player": "ghost", "amount": 1}).status_code == 404
        assert client.post("/admin/give", headers=boss, json={"player": "alice", "amount": -1}).status_code == 400
        logs = client.get("/admin/logs", headers=boss).json()["logs"]
        assert [e["action"] for e in logs] == ["change_rank", "remove_money", "give_money"]

    def test_forbidden_for_players(self, client, alice):
        r = client.post("/admin/command", headers=alice, json={"command": ".give alice 1000000"})
        assert r.status_code == 403
        assert client.get("/admin/logs", headers=alice).status_code == 403

    def test_ban_locks_out(self, client, boss, alice):
        assert client.post("/admin/ban", headers=boss, json={"player": "alice"}).status_code == 200
        assert client.get("/auth/me", headers=alice).status_code == 401
        r = client.post("/auth/login", json={"username": "alice", "password": "secret99"})
        assert r.status_code == 403


class TestRoundFeed:
    @pytest.fixture
    def sent(self, monkeypatch):
        from deps.hub import hub

        messages = []

        async def record(key, msg):
            messages.append((key, json.loads(msg)))

        monkeypatch.setattr(hub, "send", record)
        return messages

    def test_cash_out_pushes_final_snapshot(self, client, alice, sent):
        round_id = client.post("/rounds/start", headers=alice, json={"bet": 10}).json()["round_id"]
        client.post(f"/rounds/{round_id}/advance", headers=alice, json={"ticks": 5})
        client.post(f"/rounds/{round_id}/cashout", headers=alice)

        assert [key for key, _ in sent] == [f"round:{round_id}"] * 2
        final = sent[-1][1]
        assert final["state"]["status"] == "cashed_out"
        assert final["outcome"]["payout"] == pytest.approx(10 * final["outcome"]["multiplier"])


def test_verify_cashed_out_round(client, alice):
    round_id = client.post("/rounds/start", headers=alice, json={"bet": 10}).json()["round_id"]
    client.post(f"/rounds/{round_id}/advance", headers=alice, json={"ticks": 100})
    outcome = client.post(f"/rounds/{round_id}/cashout", headers=alice).json()["outcome"]

    r = client.post("/rounds/verify", json={
        "server_seed": outcome["server_seed"], "server_seed_hash": outcome["server_seed_hash"],
        "client_seed": outcome["client_seed"], "ticks": outcome["ticks"], "bet": 10})
    assert r.status_code == 200
    final = r.json()["final"]
    assert final["status"] == "cashed_out"
    assert final["tick"] == 100
    assert final["multiplier"] == pytest.approx(outcome["multiplier"])

    r = client.post("/rounds/verify", json={
        "server_seed": "s", "server_seed_hash": hash_seed("s"), "client_seed": "c", "ticks": -1})
    assert r.status_code == 422
