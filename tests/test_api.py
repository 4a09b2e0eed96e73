import pytest
from datetime import timedelta
from fastapi.testclient import TestClient
from marketplace.access import AccessGate
from marketplace.main import create_app

@pytest.fixture
def gate(clock):
    return AccessGate("api-secret", clock=clock)

@pytest.fixture
def client(engine, clock, gate):
    app = create_app(engine=engine, clock=clock, gate=gate)
    with TestClient(app) as c:
        yield c

def _auth(gate, user, admin=False):
    return {"Authorization": f"Bearer {gate.issue(user, admin=admin)}"}

def _new_listing(client, gate, hours=2):
    r = client.post(
        "/listings",
        json={"title": "Bike", "description": "Red, barely used", "duration_hours": hours},
        headers=_auth(gate, "seller"),
    )
    assert r.status_code == 201
    return r.json()

def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}

def test_create_listing(client, gate):
    body = _new_listing(client, gate)
    assert body["status"] == "open"
    assert body["winner_id"] is None
    assert body["owner_id"] == "seller"

def test_owner_comes_from_token(client, gate):
    r = client.post(
        "/listings",
        json={"owner_id": "someone-else", "title": "Bike", "description": "Red"},
        headers=_auth(gate, "seller"),
    )
    assert r.json()["owner_id"] == "seller"

def test_create_listing_requires_token(client):
    r = client.post("/listings", json={"title": "Bike", "description": "Red"})
    assert r.status_code == 403

def test_create_listing_rejects_bad_deadline(client, gate, clock):
    now = clock.now()
    r = client.post("/listings", json={
        "title": "Bike", "description": "Red",
        "created_at": now.isoformat(), "expires_at": (now - timedelta(minutes=1)).isoformat(),
    }, headers=_auth(gate, "seller"))
    assert r.status_code == 400

def test_create_listing_rejects_two_deadlines(client, gate, clock):
    r = client.post("/listings", json={
        "title": "Bike", "description": "Red",
        "expires_at": (clock.now() + timedelta(hours=1)).isoformat(), "duration_hours": 3,
    }, headers=_auth(gate, "seller"))
    assert r.status_code == 422

def test_create_listing_requires_title(client, gate):
    r = client.post("/listings", json={"title": "", "description": "Red"}, headers=_auth(gate, "seller"))
    assert r.status_code == 422

def test_bid_and_win(client, gate, clock):
    listing = _new_listing(client, gate)
    r = client.post(f"/listings/{listing['id']}/bids", json={"amount": 100}, headers=_auth(gate, "alice"))
    assert r.status_code == 200
    assert r.json()["accepted"] is True
    r = client.post(f"/listings/{listing['id']}/bids", json={"amount": 100}, headers=_auth(gate, "bob"))
    assert r.json() == {"accepted": False, "won": False, "reason": "bid_too_low", "bid": None}

    clock.advance(hours=3)
    body = client.get(f"/listings/{listing['id']}").json()
    assert body["status"] == "sold"
    assert body["winner_id"] == "alice"
    assert body["sold_at"] is not None

    r = client.post(f"/listings/{listing['id']}/bids", json={"amount": 500}, headers=_auth(gate, "bob"))
    assert r.json()["reason"] == "auction_closed"

def test_won_listings_without_prior_view(client, gate, clock):
    listing = _new_listing(client, gate)
    other = _new_listing(client, gate, hours=10)
    client.post(f"/listings/{listing['id']}/bids", json={"amount": 100}, headers=_auth(gate, "alice"))
    client.post(f"/listings/{other['id']}/bids", json={"amount": 100}, headers=_auth(gate, "alice"))
    clock.advance(hours=3)
    won = client.get("/listings", params={"winner_id": "alice"}).json()
    assert [l["id"] for l in won] == [listing["id"]]
    assert won[0]["status"] == "sold"

def test_evaluate_endpoint(client, gate, clock):
    listing = _new_listing(client, gate, hours=1)
    clock.advance(hours=2)
    r = client.post(f"/listings/{listing['id']}/evaluate")
    assert r.json() == {"listing_id": listing["id"], "status": "expired_unsold", "winner_id": None}

def test_bid_history(client, gate):
    listing = _new_listing(client, gate)
    for bidder, amount in (("alice", 10), ("bob", 20)):
        client.post(f"/listings/{listing['id']}/bids", json={"amount": amount}, headers=_auth(gate, bidder))
    history = client.get(f"/listings/{listing['id']}/bids").json()
    assert [(b["bidder_id"], b["amount"]) for b in history] == [("alice", 10), ("bob", 20)]
    mine = client.get("/bidders/bob/bids").json()
    assert [b["amount"] for b in mine] == [20]

def test_missing_token(client, gate):
    listing = _new_listing(client, gate)
    r = client.post(f"/listings/{listing['id']}/bids", json={"amount": 10})
    assert r.status_code == 403

def test_expired_token_asks_for_login(client, gate, clock):
    listing = _new_listing(client, gate, hours=5)
    headers = _auth(gate, "alice")
    clock.advance(hours=2)
    r = client.post(f"/listings/{listing['id']}/bids", json={"amount": 10}, headers=headers)
    assert r.status_code == 401
    assert "WWW-Authenticate" in r.headers

def test_bad_amounts(client, gate):
    listing = _new_listing(client, gate)
    url = f"/listings/{listing['id']}/bids"
    assert client.post(url, json={"amount": 10.5}, headers=_auth(gate, "alice")).status_code == 422
    assert client.post(url, json={"amount": 0}, headers=_auth(gate, "alice")).status_code == 400
    assert client.post(url, json={"amount": 2**63}, headers=_auth(gate, "alice")).status_code == 400

def test_unknown_listing(client, gate):
    assert client.get("/listings/missing").status_code == 404
    r = client.post("/listings/missing/bids", json={"amount": 10}, headers=_auth(gate, "alice"))
    assert r.status_code == 404

def test_idempotent_submission(client, gate):
    listing = _new_listing(client, gate)
    url = f"/listings/{listing['id']}/bids"
    payload = {"amount": 40, "idempotency_key": "req-42"}
    first = client.post(url, json=payload, headers=_auth(gate, "alice")).json()
    second = client.post(url, json=payload, headers=_auth(gate, "alice")).json()
    assert first["bid"]["id"] == second["bid"]["id"]
    assert len(client.get(f"/listings/{listing['id']}/bids").json()) == 1

    changed = client.post(url, json={"amount": 90, "idempotency_key": "req-42"}, headers=_auth(gate, "alice"))
    assert changed.status_code == 409
    bob = client.post(url, json={"amount": 90, "idempotency_key": "req-42"}, headers=_auth(gate, "bob")).json()
    assert bob["bid"]["bidder_id"] == "bob"

def test_delete_requires_admin(client, gate):
    listing = _new_listing(client, gate)
    assert client.delete(f"/listings/{listing['id']}").status_code == 403
    assert client.delete(f"/listings/{listing['id']}", headers=_auth(gate, "seller")).status_code == 403
    assert client.get(f"/listings/{listing['id']}").status_code == 200

def test_delete_listing(client, gate):
    listing = _new_listing(client, gate)
    admin = _auth(gate, "ops", admin=True)
    client.post(f"/listings/{listing['id']}/bids", json={"amount": 10}, headers=_auth(gate, "alice"))
    assert client.delete(f"/listings/{listing['id']}", headers=admin).json() == {"status": "deleted"}
    assert client.get(f"/listings/{listing['id']}").status_code == 404
    assert client.delete(f"/listings/{listing['id']}", headers=admin).status_code == 404
