"""Tests for balance reconciliation."""

import asyncio
import json
from unittest.mock import patch

import httpx
import pytest
from eth_utils import to_checksum_address

from fundrouter.chain.eth import EthChainClient
from fundrouter.ledger.models import DepositStatus
from fundrouter.services.balance_sync import BalanceReconciler
from fundrouter.services.deposits import create_deposit

from conftest import CALLER, DEPLOYER, fetch_deposit


@pytest.fixture
def reconciler(chain, session_factory):
    return BalanceReconciler(chain, session_factory=session_factory, interval_seconds=0)


async def open_deposit(chain, session_factory, n: int):
    return await create_deposit(chain, DEPLOYER, CALLER, bytes([n]) * 20, session_factory)


class TestBalanceReconciler:
    @pytest.mark.asyncio
    async def test_refreshes_unsettled_balances(self, chain, reconciler, session_factory):
        pending = await open_deposit(chain, session_factory, 1)
        chain.fund(pending.address, 11)

        updated = await reconciler.sync_once()

        assert updated == 1
        stored = await fetch_deposit(session_factory, pending.id)
        assert stored.balance_wei == 11
        assert stored.status == DepositStatus.PENDING

    @pytest.mark.asyncio
    async def test_zero_balance_is_recorded(self, chain, reconciler, session_factory):
        """A read of zero is stored, not left unknown."""
        deposit = await open_deposit(chain, session_factory, 1)

        await reconciler.sync_once()

        stored = await fetch_deposit(session_factory, deposit.id)
        assert stored.balance == b"\x00" * 32

    @pytest.mark.asyncio
    async def test_failed_read_keeps_previous_balance(self, chain, reconciler, session_factory):
        d1 = await open_deposit(chain, session_factory, 1)
        d2 = await open_deposit(chain, session_factory, 2)
        chain.fund(d1.address, 3)
        chain.fund(d2.address, 4)
        await reconciler.sync_once()

        chain.fund(d1.address, 10)
        chain.fund(d2.address, 10)
        chain.failing_balance_reads.add(d1.address)
        updated = await reconciler.sync_once()

        assert updated == 1
        assert (await fetch_deposit(session_factory, d1.id)).balance_wei == 3
        assert (await fetch_deposit(session_factory, d2.id)).balance_wei == 14

    @pytest.mark.asyncio
    async def test_malformed_node_reply_skips_only_that_deposit(self, chain, session_factory):
        d1 = await open_deposit(chain, session_factory, 1)
        d2 = await open_deposit(chain, session_factory, 2)

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            address = body["params"][0]
            result = None if address == to_checksum_address(d1.address) else "0x7"
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

        node = EthChainClient("http://node.test", transport=httpx.MockTransport(handler))
        reconciler = BalanceReconciler(node, session_factory=session_factory, interval_seconds=0)
        try:
            updated = await reconciler.sync_once()
        finally:
            await node.close()

        assert updated == 1
        assert (await fetch_deposit(session_factory, d1.id)).balance is None
        assert (await fetch_deposit(session_factory, d2.id)).balance_wei == 7

    @pytest.mark.asyncio
    async def test_routed_deposits_are_ignored(self, chain, router, reconciler, session_factory):
        deposit = await open_deposit(chain, session_factory, 1)
        chain.fund(deposit.address, 5)
        await router.route()
        chain.fund(deposit.address, 8)

        updated = await reconciler.sync_once()

        assert updated == 0
        stored = await fetch_deposit(session_factory, deposit.id)
        assert stored.status == DepositStatus.ROUTED
        assert stored.balance is None

    @pytest.mark.asyncio
    async def test_never_changes_status(self, chain, router, reconciler, session_factory):
        deposit = await open_deposit(chain, session_factory, 1)
        await router.route()
        chain.fund(deposit.address, 1)

        await reconciler.sync_once()

        stored = await fetch_deposit(session_factory, deposit.id)
        assert stored.status == DepositStatus.PROXIED
        assert stored.balance_wei == 1

    @pytest.mark.asyncio
    async def test_no_deposits(self, reconciler):
        assert await reconciler.sync_once() == 0

    @pytest.mark.asyncio
    async def test_run_survives_errors(self, reconciler):
        """The loop logs failures and keeps going."""
        calls = 0

        async def flaky():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("transient")
            if calls >= 3:
                raise asyncio.CancelledError()
            return 0

        with patch.object(reconciler, "sync_once", side_effect=flaky):
            with pytest.raises(asyncio.CancelledError):
                await reconciler.run()

        assert calls == 3
