"""API tests using FastAPI's TestClient."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from faucet.api.middleware import limiter
from faucet.api.routes import get_ledger
from faucet.config import settings
from faucet.database.connection import get_db
from faucet.database.models import Base
from faucet.main import app
from faucet.services.ledger_client import InMemoryLedger

ADMIN_KEY = "test-admin-key"
CLIENT_KEY = "test-client-key"


class TestFaucetAPI:
    """Test the HTTP surface end to end against an in-memory ledger."""

    @pytest.fixture
    def ledger(self):
        return InMemoryLedger("faucet", initial_balance=Decimal("10000"))

    @pytest.fixture
    def client(self, ledger, monkeypatch):
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
        session_local = sessionmaker(bind=engine, expire_on_commit=False)

        def override_get_db():
            db = session_local()
            try:
                yield db
            finally:
                db.close()

        monkeypatch.setattr(settings, "ADMIN_API_KEY", ADMIN_KEY)
        monkeypatch.setattr(settings, "CLIENT_API_KEY", CLIENT_KEY)
        monkeypatch.setattr(limiter, "enabled", False)
        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_ledger] = lambda: ledger
        try:
            yield TestClient(app)
        finally:
            app.dependency_overrides.clear()
            engine.dispose()

    def capability(self, client, api_key=CLIENT_KEY, **body):
        response = client.post(
            "/api/v1/capabilities", json=body, headers={"X-API-Key": api_key}
        )
        assert response.status_code == 201, response.text
        return response.json()["token"]

    def disburse_token(self, client, account, max_amount="1000"):
        return self.capability(client, capability="DISBURSE", target=account, max_amount=max_amount)

    def admin_token(self, client, target=None):
        return self.capability(client, api_key=ADMIN_KEY, capability="ADMIN_LIMIT", target=target)

    def request_funds(self, client, account, amount, token, **headers):
        return client.post(
            "/api/v1/faucet/request",
            json={"account": account, "amount": amount},
            headers={"X-Capability": token, **headers},
        )

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["health"] == "/api/v1/health"

    def test_health(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["database"] is True
        assert response.json()["ledger"] is True

    def test_request_and_limits(self, client, ledger):
        token = self.disburse_token(client, "alice")

        response = self.request_funds(client, "alice", "20", token)

        assert response.status_code == 200, response.text
        body = response.json()
        assert Decimal(body["spent"]) == Decimal("20")
        assert body["direction"] == "disburse"
        assert ledger.balances["alice"] == Decimal("20")

        limits = client.get("/api/v1/limits/alice").json()
        assert Decimal(limits["account_limit"]) == Decimal("100")
        assert Decimal(limits["request_limit"]) == Decimal("20")
        assert Decimal(limits["account_limit_remaining"]) == Decimal("80")

    def test_request_limit_exceeded(self, client):
        token = self.disburse_token(client, "alice")

        response = self.request_funds(client, "alice", "80", token)

        assert response.status_code == 403
        assert response.json()["error"] == "request_limit_exceeded"

    def test_invalid_amount(self, client):
        token = self.disburse_token(client, "alice")

        response = self.request_funds(client, "alice", "-5", token)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_amount"

    def test_amount_finer_than_a_drop(self, client):
        token = self.disburse_token(client, "alice")

        response = self.request_funds(client, "alice", "1.0000001", token)

        assert response.status_code == 422

    def test_request_without_capability(self, client):
        response = client.post("/api/v1/faucet/request", json={"account": "alice", "amount": "5"})

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    def test_capability_for_other_account(self, client):
        token = self.disburse_token(client, "bob")

        response = self.request_funds(client, "alice", "5", token)

        assert response.status_code == 401

    def test_garbage_capability_token(self, client):
        response = self.request_funds(client, "alice", "5", "not-a-token")

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid capability token"

    def test_ledger_failure(self, client, ledger):
        ledger.balances["faucet"] = Decimal("1")
        token = self.disburse_token(client, "alice")

        response = self.request_funds(client, "alice", "5", token)

        assert response.status_code == 502
        assert response.json()["error"] == "ledger_transfer_failed"
        limits = client.get("/api/v1/limits/alice").json()
        assert Decimal(limits["account_limit_remaining"]) == Decimal("100")

    def test_idempotent_request(self, client, ledger):
        token = self.disburse_token(client, "alice")

        first = self.request_funds(client, "alice", "10", token, **{"Idempotency-Key": "order-12345"})
        second = self.request_funds(client, "alice", "10", token, **{"Idempotency-Key": "order-12345"})
        conflict = self.request_funds(client, "alice", "11", token, **{"Idempotency-Key": "order-12345"})

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["replayed"] is True
        assert second.json()["tx_hash"] == first.json()["tx_hash"]
        assert conflict.status_code == 409
        assert ledger.balances["alice"] == Decimal("10")

    def test_invalid_idempotency_key(self, client):
        token = self.disburse_token(client, "alice")

        response = self.request_funds(client, "alice", "10", token, **{"Idempotency-Key": "bad key!"})

        assert response.status_code == 400

    def test_return_funds(self, client):
        self.request_funds(client, "alice", "20", self.disburse_token(client, "alice"))
        token = self.capability(client, capability="TRANSFER", source="alice", max_amount="50")

        response = client.post(
            "/api/v1/faucet/return",
            json={"account": "alice", "amount": "5"},
            headers={"X-Capability": token},
        )

        assert response.status_code == 200, response.text
        assert Decimal(response.json()["spent"]) == Decimal("15")

    def test_client_key_cannot_mint_admin_grant(self, client):
        response = client.post(
            "/api/v1/capabilities",
            json={"capability": "ADMIN_LIMIT"},
            headers={"X-API-Key": CLIENT_KEY},
        )

        assert response.status_code == 403

    def test_client_key_cannot_mint_disbursement_from_other_source(self, client):
        response = client.post(
            "/api/v1/capabilities",
            json={"capability": "DISBURSE", "source": "bob", "target": "alice", "max_amount": "5"},
            headers={"X-API-Key": CLIENT_KEY},
        )

        assert response.status_code == 403

    def test_invalid_api_key(self, client):
        response = client.post(
            "/api/v1/capabilities",
            json={"capability": "DISBURSE", "target": "alice", "max_amount": "5"},
            headers={"X-API-Key": "wrong"},
        )

        assert response.status_code == 401

    def test_admin_raises_limits(self, client):
        token = self.admin_token(client, target="alice")

        response = client.put(
            "/api/v1/limits/alice/request-limit",
            json={"limit": "200"},
            headers={"X-Capability": token},
        )
        assert response.status_code == 200, response.text
        assert Decimal(response.json()["request_limit"]) == Decimal("200")

        response = self.request_funds(client, "alice", "80", self.disburse_token(client, "alice"))
        assert response.status_code == 200
        assert Decimal(response.json()["spent"]) == Decimal("80")

    def test_set_limit_without_admin_grant(self, client):
        token = self.disburse_token(client, "alice")

        response = client.put(
            "/api/v1/limits/alice/account-limit",
            json={"limit": "500"},
            headers={"X-Capability": token},
        )

        assert response.status_code == 401
        limits = client.get("/api/v1/limits/alice").json()
        assert Decimal(limits["account_limit"]) == Decimal("100")

    def test_policy(self, client):
        token = self.admin_token(client)

        raised = client.put(
            "/api/v1/policy",
            json={"default_account_limit": "150"},
            headers={"X-Capability": token},
        )
        lowered = client.put(
            "/api/v1/policy",
            json={"default_request_limit": "5"},
            headers={"X-Capability": token},
        )

        assert raised.status_code == 200, raised.text
        assert lowered.status_code == 400
        policy = client.get("/api/v1/policy").json()
        assert Decimal(policy["default_account_limit"]) == Decimal("150")
        assert Decimal(policy["default_request_limit"]) == Decimal("20")

    def test_transfer_history(self, client):
        token = self.disburse_token(client, "alice")
        self.request_funds(client, "alice", "3", token)
        self.request_funds(client, "alice", "4", token)

        response = client.get("/api/v1/transfers/alice", headers={"X-API-Key": CLIENT_KEY})

        assert response.status_code == 200
        amounts = [Decimal(t["amount"]) for t in response.json()["transfers"]]
        assert amounts == [Decimal("4"), Decimal("3")]

    def test_transfer_history_requires_api_key(self, client):
        response = client.get("/api/v1/transfers/alice")
        assert response.status_code in (401, 403)

    def test_faucet_status(self, client):
        response = client.get("/api/v1/faucet/status")

        assert response.status_code == 200
        assert response.json()["faucet_account"] == "faucet"
        assert Decimal(response.json()["balance"]) == Decimal("10000")
