"""Tests for the FastAPI endpoints."""

from contextlib import asynccontextmanager

import pytest
from eth_utils import keccak
from httpx import ASGITransport, AsyncClient

from fundrouter.api.app import create_app
from fundrouter.api.routes import deposits as deposit_routes
from fundrouter.chain import factory
from fundrouter.chain.dryrun import DryRunChainClient, compute_proxy_address
from fundrouter.ledger.database import StoreError, close_db, get_engine
from fundrouter.ledger.models import Base
from fundrouter.services import deposit_router, deposits as deposit_service

from conftest import DEPLOYER, TREASURY

USER = "0x" + "aa" * 20


@pytest.fixture
def dry_chain():
    """Fresh in-memory chain behind the API."""
    chain = DryRunChainClient()
    factory._chain_instance = chain
    yield chain
    factory.reset_chain_client()


@pytest.fixture
async def test_app(dry_chain):
    """Create test application with fresh database."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    app = create_app()

    yield app

    # Cleanup
    await close_db()


@pytest.fixture
async def client(test_app):
    """Create async test client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _create(client, user: str = USER) -> int:
    response = await client.post("/deposits", json={"user": user})
    assert response.status_code == 201
    return response.json()["id"]


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "fundrouter"

    @pytest.mark.asyncio
    async def test_detailed_health(self, client):
        response = await client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["chain_reachable"] is True
        assert data["config"]["dry_run"] is True
        assert "private_key" not in str(data["config"])

    @pytest.mark.asyncio
    async def test_detailed_health_degraded(self, client, dry_chain):
        dry_chain.unavailable = True

        response = await client.get("/health/detailed")

        assert response.json()["status"] == "degraded"


class TestCreateDeposit:
    """Tests for POST /deposits."""

    @pytest.mark.asyncio
    async def test_create(self, client):
        deposit_id = await _create(client)

        response = await client.get("/deposits", params={"user": USER})
        deposits = response.json()
        assert len(deposits) == 1
        deposit = deposits[0]
        assert deposit["id"] == deposit_id
        assert deposit["status"] == "pending"
        assert deposit["balance"] is None
        salt = keccak(bytes.fromhex("aa" * 20))
        assert deposit["salt"] == "0x" + salt.hex()
        assert deposit["address"] == "0x" + compute_proxy_address(
            DEPLOYER, factory.DRY_RUN_CALLER, salt
        ).hex()

    @pytest.mark.asyncio
    async def test_create_twice_same_id(self, client):
        assert await _create(client) == await _create(client)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad", ["0x1234", "0x" + "zz" * 20, "", "0x" + "aa" * 32])
    async def test_invalid_user(self, client, bad):
        response = await client.post("/deposits", json={"user": bad})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_chain_unavailable(self, client, dry_chain):
        dry_chain.unavailable = True

        response = await client.post("/deposits", json={"user": USER})

        assert response.status_code == 502


class TestQueryDeposits:
    """Tests for GET /deposits."""

    @pytest.mark.asyncio
    async def test_default_limit_and_order(self, client):
        ids = [await _create(client, "0x" + f"{n:02x}" * 20) for n in range(1, 13)]

        response = await client.get("/deposits")

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 10
        assert [d["id"] for d in data] == list(reversed(ids))[:10]

    @pytest.mark.asyncio
    async def test_offset(self, client):
        ids = [await _create(client, "0x" + f"{n:02x}" * 20) for n in range(1, 4)]

        response = await client.get("/deposits", params={"limit": 2, "offset": 2})

        assert [d["id"] for d in response.json()] == [ids[0]]

    @pytest.mark.asyncio
    async def test_negative_offset_is_zero(self, client):
        await _create(client)

        response = await client.get("/deposits", params={"offset": -5})

        assert len(response.json()) == 1

    @pytest.mark.asyncio
    async def test_status_filter(self, client):
        await _create(client)

        pending = await client.get("/deposits", params={"status": "pending"})
        routed = await client.get("/deposits", params={"status": "routed"})

        assert len(pending.json()) == 1
        assert routed.json() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params",
        [
            {"user": "0x12"},
            {"salt": "0x" + "aa" * 20},
            {"address": "nothex"},
            {"status": "lost"},
        ],
    )
    async def test_invalid_filters(self, client, params):
        response = await client.get("/deposits", params=params)

        assert response.status_code == 400


class TestRouteEndpoint:
    """Tests for POST /deposits/route."""

    @pytest.mark.asyncio
    async def test_route_lifecycle(self, client, dry_chain):
        await _create(client)
        deposit = (await client.get("/deposits")).json()[0]
        address = bytes.fromhex(deposit["address"][2:])

        response = await client.post("/deposits/route")
        assert response.status_code == 200
        assert response.json()["tx_hashes"] == []

        dry_chain.fund(address, 5)
        response = await client.post("/deposits/route", params={"address": deposit["address"]})

        assert response.status_code == 200
        data = response.json()
        assert data["routed"] == 1
        assert len(data["tx_hashes"]) == 1
        assert dry_chain.balances[TREASURY] == 5

        stored = (await client.get("/deposits")).json()[0]
        assert stored["status"] == "routed"
        assert stored["balance"] is None

    @pytest.mark.asyncio
    async def test_route_deploy_failure(self, client, dry_chain):
        await _create(client)
        dry_chain.revert_deploys = True

        response = await client.post("/deposits/route")

        assert response.status_code == 502
        assert (await client.get("/deposits")).json()[0]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_route_invalid_address(self, client):
        response = await client.post("/deposits/route", params={"address": "0x12"})

        assert response.status_code == 400


class TestStoreUnavailable:
    """A failing deposit store surfaces as 503 on every endpoint."""

    @pytest.fixture
    def broken_store(self, monkeypatch):
        @asynccontextmanager
        async def broken_db(session_factory=None):
            raise StoreError("database is locked")
            yield

        for module in (deposit_routes, deposit_service, deposit_router):
            monkeypatch.setattr(module, "get_db", broken_db)

    @pytest.mark.asyncio
    async def test_create(self, client, broken_store):
        response = await client.post("/deposits", json={"user": USER})

        assert response.status_code == 503
        assert "database is locked" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_query(self, client, broken_store):
        response = await client.get("/deposits")

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_route(self, client, broken_store):
        response = await client.post("/deposits/route")

        assert response.status_code == 503
