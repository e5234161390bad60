from datetime import timedelta

from tests.helpers import T0, auth_header, election_payload, register_verified


def test_create_election(client, admin_token):
    resp = client.post("/api/elections", json=election_payload(), headers=auth_header(admin_token))
    assert resp.status_code == 201
    body = resp.json()
    assert body["title"] == "Student Council"
    assert body["totalVotes"] == 0
    assert body["isActive"] is True
    assert body["createdBy"]["email"] == "admin@evote.org"
    assert [c["name"] for c in body["candidates"]] == ["Alice", "Bob"]
    assert all(c["voteCount"] == 0 for c in body["candidates"])
    assert body["candidates"][0]["party"] == "Alice Party"


def test_create_ignores_client_supplied_counts(client, admin_token):
    payload = election_payload()
    payload["candidates"] = [{"name": "Alice", "votes": 50, "voteCount": 50}, {"name": "Bob"}]
    body = client.post("/api/elections", json=payload, headers=auth_header(admin_token)).json()
    assert [c["voteCount"] for c in body["candidates"]] == [0, 0]
    assert "votes" not in body["candidates"][0]


def test_create_requires_admin(client, voter, store):
    _, token = voter
    resp = client.post("/api/elections", json=election_payload(), headers=auth_header(token))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Admin access required"
    assert client.post("/api/elections", json=election_payload()).status_code == 401
    assert store.elections == {}


def test_create_validates_fields(client, admin_token):
    headers = auth_header(admin_token)
    bad = [
        election_payload(start=T0, end=T0),
        election_payload(candidates=()),
        election_payload(candidates=("Alice", "alice")),
        election_payload(title=""),
    ]
    for payload in bad:
        assert client.post("/api/elections", json=payload, headers=headers).status_code == 400
    missing = election_payload()
    del missing["endDate"]
    assert client.post("/api/elections", json=missing, headers=headers).status_code == 400


def test_list_shows_only_active_newest_first(client, admin_token, voter):
    headers = auth_header(admin_token)
    first = client.post("/api/elections", json=election_payload(title="First"), headers=headers).json()
    second = client.post("/api/elections", json=election_payload(title="Second"), headers=headers).json()
    hidden = client.post("/api/elections", json=election_payload(title="Hidden"), headers=headers).json()
    client.put(f"/api/elections/{hidden['id']}", json={"isActive": False}, headers=headers)

    resp = client.get("/api/elections", headers=auth_header(voter[1]))
    assert resp.status_code == 200
    assert [e["id"] for e in resp.json()] == [second["id"], first["id"]]

    # Inactive elections are still readable by id.
    assert client.get(f"/api/elections/{hidden['id']}", headers=headers).json()["isActive"] is False


def test_reads_require_token(client, election):
    assert client.get("/api/elections").status_code == 401
    assert client.get(f"/api/elections/{election['id']}").status_code == 401
    assert client.get(f"/api/elections/{election['id']}/results").status_code == 401


def test_get_unknown_election(client, admin_token):
    headers = auth_header(admin_token)
    assert client.get("/api/elections/999", headers=headers).status_code == 404
    assert client.get("/api/elections/999/results", headers=headers).status_code == 404
    assert client.put("/api/elections/999", json={"title": "x"}, headers=headers).status_code == 404
    assert client.delete("/api/elections/999", headers=headers).status_code == 404


def test_update_partial_fields(client, admin_token, election):
    headers = auth_header(admin_token)
    new_end = (T0 + timedelta(hours=5)).isoformat()
    resp = client.put(f"/api/elections/{election['id']}",
                      json={"title": "Renamed", "endDate": new_end}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "Renamed"
    assert body["description"] == election["description"]
    assert body["startDate"] == election["startDate"]
    assert body["endDate"].startswith("2030-01-01T17:00")


def test_update_rejects_inverted_window(client, admin_token, election):
    resp = client.put(f"/api/elections/{election['id']}",
                      json={"endDate": (T0 - timedelta(hours=2)).isoformat()},
                      headers=auth_header(admin_token))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "endDate must be after startDate"


def test_update_requires_admin(client, voter, election):
    resp = client.put(f"/api/elections/{election['id']}", json={"title": "Mine"},
                      headers=auth_header(voter[1]))
    assert resp.status_code == 403


def test_candidates_replaceable_only_before_voting(client, admin_token, voter, election):
    headers = auth_header(admin_token)
    resp = client.put(f"/api/elections/{election['id']}",
                      json={"candidates": [{"name": "Carol"}, {"name": "Dan"}, {"name": "Eve"}]},
                      headers=headers)
    assert resp.status_code == 200
    candidates = resp.json()["candidates"]
    assert [c["name"] for c in candidates] == ["Carol", "Dan", "Eve"]

    client.post("/api/votes", json={"electionId": election["id"], "candidateId": candidates[0]["id"]},
                headers=auth_header(voter[1]))
    resp = client.put(f"/api/elections/{election['id']}",
                      json={"candidates": [{"name": "Zed"}]}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Cannot change candidates after voting has started"
    after = client.get(f"/api/elections/{election['id']}", headers=headers).json()
    assert [c["name"] for c in after["candidates"]] == ["Carol", "Dan", "Eve"]
    assert after["totalVotes"] == 1


def test_delete_election_keeps_ballots(client, admin_token, voter, election, store):
    headers = auth_header(admin_token)
    voter_id, voter_token = voter
    alice = election["candidates"][0]
    client.post("/api/votes", json={"electionId": election["id"], "candidateId": alice["id"]},
                headers=auth_header(voter_token))
    assert len(store.ballots) == 1

    assert client.delete(f"/api/elections/{election['id']}", headers=auth_header(voter_token)).status_code == 403
    resp = client.delete(f"/api/elections/{election['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Election deleted successfully"

    assert client.get(f"/api/elections/{election['id']}", headers=headers).status_code == 404
    assert client.get(f"/api/elections/{election['id']}/results", headers=headers).status_code == 404
    assert election["id"] not in [e["id"] for e in client.get("/api/elections", headers=headers).json()]
    assert client.put(f"/api/elections/{election['id']}", json={"title": "Back"},
                      headers=headers).status_code == 404
    assert client.delete(f"/api/elections/{election['id']}", headers=headers).status_code == 404

    ballot = next(iter(store.ballots.values()))
    assert (ballot.election_id, ballot.voter_id, ballot.candidate_id) == (election["id"], voter_id, alice["id"])
    assert store.users[voter_id].voted_elections == [election["id"]]

    history = client.get("/api/votes/history", headers=auth_header(voter_token)).json()
    assert [h["electionId"] for h in history] == [election["id"]]
    assert "election" not in history[0]
    assert client.get(f"/api/votes/check/{election['id']}",
                      headers=auth_header(voter_token)).json() == {"hasVoted": True}


def test_deleted_election_accepts_no_ballots(client, mailer, admin_token, election, store):
    client.delete(f"/api/elections/{election['id']}", headers=auth_header(admin_token))
    _, token = register_verified(client, mailer, "late@evote.org")
    resp = client.post("/api/votes", json={"electionId": election["id"],
                                           "candidateId": election["candidates"][0]["id"]},
                       headers=auth_header(token))
    assert resp.status_code == 400
    assert resp.json()["reason"] == "ElectionUnavailable"
    assert store.ballots == {}

def test_results_percentages(client, mailer, admin_token, election):
    alice, bob = election["candidates"]
    for i, cand in enumerate((alice, alice, bob)):
        _, token = register_verified(client, mailer, f"r{i}@evote.org")
        resp = client.post("/api/votes", json={"electionId": election["id"], "candidateId": cand["id"]},
                           headers=auth_header(token))
        assert resp.status_code == 200

    resp = client.get(f"/api/elections/{election['id']}/results", headers=auth_header(admin_token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["totalVotes"] == 3
    assert [(c["name"], c["voteCount"], c["percentage"]) for c in body["candidates"]] == [
        ("Alice", 2, 67), ("Bob", 1, 33),
    ]


def test_results_before_any_vote(client, voter, election):
    body = client.get(f"/api/elections/{election['id']}/results", headers=auth_header(voter[1])).json()
    assert [c["percentage"] for c in body["candidates"]] == [0, 0]
