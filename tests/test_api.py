import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.database import get_db
from app.core.escrow_gateway import get_escrow_gateway
from app.core.websocket_manager import get_notification_hub
from app.main import app

PASSWORD = "secret123"


@pytest_asyncio.fixture
async def api(session_factory, gateway, fanout):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_escrow_gateway] = lambda: gateway
    app.dependency_overrides[get_notification_hub] = lambda: fanout

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def register_and_login(api, email, wallet):
    response = await api.post("/auth/register", json={
        "email": email,
        "password": PASSWORD,
        "wallet_address": wallet,
        "specialties": ["PLUMBING"],
    })
    assert response.status_code == 201, response.text
    user = response.json()

    response = await api.post("/auth/token", data={"username": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    token = response.json()["access_token"]
    return user, {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def parties(api):
    client, client_headers = await register_and_login(api, "client@marketplace.dev", "0x" + "ab" * 20)
    provider, provider_headers = await register_and_login(api, "provider@marketplace.dev", "0x" + "cd" * 20)
    return client, client_headers, provider, provider_headers


def test_root():
    # runs the lifespan too; the root route touches neither the database nor the chain
    from fastapi.testclient import TestClient
    with TestClient(app) as client:
        response = client.get("/")
    assert response.json()["status"] == "success"


@pytest.mark.asyncio
async def test_register_rejects_invalid_wallet(api):
    response = await api.post("/auth/register", json={
        "email": "someone@marketplace.dev",
        "password": PASSWORD,
        "wallet_address": "not-a-wallet",
    })
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_register_rejects_duplicate_wallet(api, parties):
    response = await api.post("/auth/register", json={
        "email": "third@marketplace.dev",
        "password": PASSWORD,
        "wallet_address": "0x" + "ab" * 20,
    })
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_wrong_password_is_unauthorized(api, parties):
    response = await api.post("/auth/token", data={"username": "client@marketplace.dev", "password": "wrong1234"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_endpoints_require_login(api):
    response = await api.get("/jobs")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_full_job_lifecycle(api, gateway, fanout, parties):
    client, client_headers, provider, provider_headers = parties

    # 1. 刊登工作
    response = await api.post("/jobs", headers=client_headers, json={
        "title": "Fix the kitchen sink",
        "description": "Leaking pipe",
        "category": "PLUMBING",
        "amount": 100000000000000000,
    })
    assert response.status_code == 201, response.text
    job = response.json()
    assert job["status"] == "PENDING"
    assert job["amount"] == "100000000000000000"
    assert job["provider_id"] is None

    # 2. 提案
    response = await api.post(f"/jobs/{job['job_id']}/proposals", headers=provider_headers, json={
        "message": "Can come tomorrow",
        "proposed_amount": 90000000000000000,
    })
    assert response.status_code == 201, response.text
    proposal = response.json()

    response = await api.get(f"/jobs/{job['job_id']}/proposals", headers=client_headers)
    assert [p["proposal_id"] for p in response.json()] == [proposal["proposal_id"]]
    assert response.json()[0]["provider"]["email"] == "provider@marketplace.dev"

    # 3. 接受提案
    response = await api.post(f"/proposals/{proposal['proposal_id']}/accept", headers=client_headers)
    assert response.status_code == 200, response.text
    assignment = response.json()
    assert assignment["job"]["status"] == "IN_PROGRESS"
    assert assignment["job"]["provider_id"] == provider["user_id"]
    assert assignment["job"]["amount"] == "90000000000000000"
    assert assignment["proposal"]["status"] == "ACCEPTED"

    # 4. 雙方確認完成
    response = await api.post(f"/jobs/{job['job_id']}/complete", headers=client_headers)
    assert response.status_code == 200, response.text
    assert response.json()["both_approved"] is False

    response = await api.post(f"/jobs/{job['job_id']}/complete", headers=client_headers)
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "AlreadyApproved"

    response = await api.post(f"/jobs/{job['job_id']}/complete", headers=provider_headers)
    assert response.status_code == 200, response.text
    assert response.json()["both_approved"] is True
    assert response.json()["job"]["status"] == "COMPLETED"

    # 5. 評價
    response = await api.post("/reviews", headers=client_headers, json={
        "job_id": job["job_id"],
        "rating": 5,
        "role": "CLIENT_TO_PROVIDER",
        "comment": "Fast and clean",
    })
    assert response.status_code == 201, response.text

    response = await api.get(f"/users/{provider['user_id']}", headers=client_headers)
    assert response.json()["provider_score"] == 5.0

    response = await api.get(f"/users/{provider['user_id']}/reviews", headers=client_headers)
    assert [r["rating"] for r in response.json()] == [5]

    assert "new-job-created" in fanout.broadcast_names()
    assert "job-status-changed" in fanout.broadcast_names()


@pytest.mark.asyncio
async def test_accept_failure_returns_bad_gateway_with_retry_hint(api, gateway, parties):
    client, client_headers, provider, provider_headers = parties
    response = await api.post("/jobs", headers=client_headers, json={
        "title": "Trim hedge", "description": "Front yard", "category": "GARDENING", "amount": 5000,
    })
    job = response.json()
    response = await api.post(f"/jobs/{job['job_id']}/proposals", headers=provider_headers, json={})
    proposal = response.json()

    gateway.fail_accept = True
    response = await api.post(f"/proposals/{proposal['proposal_id']}/accept", headers=client_headers)

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["code"] == "ExternalCallError"
    assert detail["stage"] == "accept"
    contract_job_id = detail["contract_job_id"]

    gateway.fail_accept = False
    response = await api.post(
        f"/proposals/{proposal['proposal_id']}/accept",
        headers=client_headers,
        json={"contract_job_id": contract_job_id},
    )
    assert response.status_code == 200, response.text
    assert response.json()["job"]["contract_job_id"] == contract_job_id


@pytest.mark.asyncio
async def test_self_proposal_is_bad_request(api, parties):
    client, client_headers, _, _ = parties
    response = await api.post("/jobs", headers=client_headers, json={
        "title": "Clean windows", "description": "Two floors", "category": "CLEANING", "amount": 10,
    })
    job = response.json()

    response = await api.post(f"/jobs/{job['job_id']}/proposals", headers=client_headers, json={})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "SelfProposal"


@pytest.mark.asyncio
async def test_counter_offer_round_trip(api, fanout, parties):
    client, client_headers, provider, provider_headers = parties
    response = await api.post("/jobs", headers=client_headers, json={
        "title": "Paint door", "description": "Blue", "category": "PAINTING", "amount": 1000,
    })
    job = response.json()
    response = await api.post(f"/jobs/{job['job_id']}/proposals", headers=provider_headers, json={"proposed_amount": 1500})
    proposal = response.json()

    response = await api.post(
        f"/proposals/{proposal['proposal_id']}/counteroffer", headers=client_headers, json={"amount": 1200}
    )
    assert response.status_code == 200, response.text
    assert response.json()["status"] == "COUNTEROFFERED"
    assert response.json()["counter_offer_amount"] == "1200"

    response = await api.post(
        f"/proposals/{proposal['proposal_id']}/counteroffer/respond", headers=provider_headers, json={"action": "reject"}
    )
    assert response.status_code == 200, response.text
    assert response.json()["proposal"]["status"] == "COUNTEROFFER_REJECTED"
    assert response.json()["job"]["status"] == "PENDING"

    response = await api.post(f"/jobs/{job['job_id']}/proposals", headers=provider_headers, json={})
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "ReapplicationCooldown"
    assert response.json()["detail"]["cooldown_remaining"] == 24

    response = await api.get("/proposals/my", headers=provider_headers)
    assert response.json()[0]["job"]["job_id"] == job["job_id"]


@pytest.mark.asyncio
async def test_delete_job(api, parties):
    client, client_headers, _, provider_headers = parties
    response = await api.post("/jobs", headers=client_headers, json={
        "title": "Fix shelf", "description": "Loose", "category": "CARPENTRY", "amount": 10,
    })
    job = response.json()

    response = await api.delete(f"/jobs/{job['job_id']}", headers=provider_headers)
    assert response.status_code == 403

    response = await api.delete(f"/jobs/{job['job_id']}", headers=client_headers)
    assert response.status_code == 204

    response = await api.get(f"/jobs/{job['job_id']}", headers=client_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_balance(api, gateway, parties):
    client, client_headers, _, _ = parties
    gateway.balances[client["wallet_address"]] = 3 * 10 ** 18

    response = await api.get(f"/users/{client['user_id']}/balance", headers=client_headers)

    assert response.status_code == 200
    assert response.json()["balance_wei"] == "3000000000000000000"
    assert response.json()["balance_eth"] == "3"


@pytest.mark.asyncio
async def test_update_specialties(api, parties):
    _, client_headers, _, _ = parties
    response = await api.patch("/users/me", headers=client_headers, json={"specialties": ["ELECTRICAL", "OTHER"]})
    assert response.status_code == 200
    assert response.json()["specialties"] == ["ELECTRICAL", "OTHER"]
