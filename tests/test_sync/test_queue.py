"""Tests for the durable mutation queue and its replay semantics."""

from __future__ import annotations

import asyncio
import json

import pytest

from conftest import BASE_URL, FakeTransport, make_response
from offsync.models import CachedRequest, EngineConfig, HaltPolicy
from offsync.sync.queue import MutationQueue, should_enqueue

TRANSACTIONS = f"{BASE_URL}/api/transactions"
BUDGETS = f"{BASE_URL}/api/budgets"


def _post(url: str, payload: dict) -> CachedRequest:
    return CachedRequest(
        method="POST",
        url=url,
        headers={"Content-Type": "application/json"},
        body=json.dumps(payload).encode(),
    )


class TestEnqueue:
    def test_sequence_increases(self, queue: MutationQueue) -> None:
        first = queue.enqueue(_post(TRANSACTIONS, {"amount": 1}))
        second = queue.enqueue(_post(TRANSACTIONS, {"amount": 2}))
        assert second.sequence > first.sequence
        assert len(queue) == 2

    def test_pending_in_order(self, queue: MutationQueue) -> None:
        for amount in (3, 1, 2):
            queue.enqueue(_post(TRANSACTIONS, {"amount": amount}))
        bodies = [json.loads(m.request.body)["amount"] for m in queue.pending()]
        assert bodies == [3, 1, 2]

    def test_survives_reopen(self, tmp_path) -> None:
        q = MutationQueue(tmp_path / "store")
        q.enqueue(_post(TRANSACTIONS, {"amount": 5}))
        q.close()

        reopened = MutationQueue(tmp_path / "store")
        try:
            pending = reopened.pending()
            assert len(pending) == 1
            assert pending[0].request.body == b'{"amount": 5}'
            assert pending[0].request.headers == {"Content-Type": "application/json"}
            follow_up = reopened.enqueue(_post(TRANSACTIONS, {"amount": 6}))
            assert follow_up.sequence > pending[0].sequence
        finally:
            reopened.close()

    def test_clear(self, queue: MutationQueue) -> None:
        queue.enqueue(_post(TRANSACTIONS, {}))
        queue.enqueue(_post(BUDGETS, {}))
        assert queue.clear() == 2
        assert queue.pending() == []


class TestDrain:
    def test_fifo_replay_then_empty(self, queue: MutationQueue, transport: FakeTransport) -> None:
        transport.route(TRANSACTIONS, make_response(b'{"id": 1}', status_code=201))
        a = queue.enqueue(_post(TRANSACTIONS, {"name": "A"}))
        b = queue.enqueue(_post(TRANSACTIONS, {"name": "B"}))

        result = asyncio.run(queue.drain(transport))

        assert [json.loads(call.body)["name"] for call in transport.calls] == ["A", "B"]
        assert [m.sequence for m in result.succeeded] == [a.sequence, b.sequence]
        assert result.rejected == []
        assert result.still_pending == []
        assert len(queue) == 0

    def test_empty_queue(self, queue: MutationQueue, transport: FakeTransport) -> None:
        result = asyncio.run(queue.drain(transport))
        assert result.succeeded == []
        assert transport.calls == []

    def test_offline_keeps_entries_and_counts_attempts(
        self, queue: MutationQueue, transport: FakeTransport
    ) -> None:
        queue.enqueue(_post(TRANSACTIONS, {}))
        transport.offline = True

        result = asyncio.run(queue.drain(transport))

        assert len(result.still_pending) == 1
        stored = queue.pending()[0]
        assert stored.attempts == 1
        assert "unreachable" in stored.last_error

    def test_error_status_is_rejected_and_removed(
        self, queue: MutationQueue, transport: FakeTransport
    ) -> None:
        transport.route(TRANSACTIONS, make_response(b'{"error": "invalid"}', status_code=422))
        queue.enqueue(_post(TRANSACTIONS, {}))

        result = asyncio.run(queue.drain(transport))

        assert len(result.rejected) == 1
        assert result.succeeded == []
        assert len(queue) == 0

    def test_resource_policy_holds_same_path(self, tmp_path, transport: FakeTransport) -> None:
        queue = MutationQueue(tmp_path / "q", halt_policy=HaltPolicy.RESOURCE)
        transport.route(BUDGETS, make_response(status_code=201))
        transport.offline_urls.add(TRANSACTIONS)
        try:
            queue.enqueue(_post(TRANSACTIONS, {"n": 1}))
            queue.enqueue(_post(BUDGETS, {"n": 2}))
            queue.enqueue(_post(TRANSACTIONS, {"n": 3}))

            result = asyncio.run(queue.drain(transport))

            assert transport.calls_to(TRANSACTIONS) == 1
            assert len(result.succeeded) == 1
            assert len(result.still_pending) == 2
            assert [json.loads(m.request.body)["n"] for m in queue.pending()] == [1, 3]
        finally:
            queue.close()

    def test_all_policy_stops_at_first_failure(self, tmp_path, transport: FakeTransport) -> None:
        queue = MutationQueue(tmp_path / "q", halt_policy=HaltPolicy.ALL)
        transport.route(BUDGETS, make_response(status_code=201))
        transport.offline_urls.add(TRANSACTIONS)
        try:
            queue.enqueue(_post(TRANSACTIONS, {}))
            queue.enqueue(_post(BUDGETS, {}))

            result = asyncio.run(queue.drain(transport))

            assert transport.calls_to(BUDGETS) == 0
            assert len(result.still_pending) == 2
        finally:
            queue.close()

    def test_none_policy_continues(self, tmp_path, transport: FakeTransport) -> None:
        queue = MutationQueue(tmp_path / "q", halt_policy=HaltPolicy.NONE)
        transport.route(TRANSACTIONS, make_response(status_code=201))
        transport.offline_urls.add(BUDGETS)
        try:
            queue.enqueue(_post(BUDGETS, {}))
            queue.enqueue(_post(TRANSACTIONS, {}))
            queue.enqueue(_post(BUDGETS, {}))

            result = asyncio.run(queue.drain(transport))

            assert transport.calls_to(BUDGETS) == 2
            assert len(result.succeeded) == 1
            assert len(result.still_pending) == 2
        finally:
            queue.close()

    def test_concurrent_drains_never_resend(
        self, queue: MutationQueue, transport: FakeTransport
    ) -> None:
        transport.route(TRANSACTIONS, make_response(status_code=201))
        queue.enqueue(_post(TRANSACTIONS, {}))

        async def _both():
            return await asyncio.gather(queue.drain(transport), queue.drain(transport))

        first, second = asyncio.run(_both())
        assert transport.calls_to(TRANSACTIONS) == 1
        assert len(first.succeeded) + len(second.succeeded) == 1


class TestShouldEnqueue:
    def test_api_post(self) -> None:
        assert should_enqueue(_post(TRANSACTIONS, {}))

    def test_api_get(self) -> None:
        assert not should_enqueue(CachedRequest(url=TRANSACTIONS))

    def test_non_api_post(self) -> None:
        assert not should_enqueue(_post(f"{BASE_URL}/contact", {}))

    def test_custom_prefix(self) -> None:
        config = EngineConfig(api_prefix="/v2/")
        assert should_enqueue(_post(f"{BASE_URL}/v2/items", {}), config)
        assert not should_enqueue(_post(TRANSACTIONS, {}), config)


class TestSharedDirectory:
    def test_two_handles_never_resend(self, tmp_path, transport: FakeTransport) -> None:
        first = MutationQueue(tmp_path / "shared")
        second = MutationQueue(tmp_path / "shared")
        transport.route(TRANSACTIONS, make_response(status_code=201))
        try:
            first.enqueue(_post(TRANSACTIONS, {"amount": 10}))

            async def _both():
                transport.gate = asyncio.Event()
                drains = asyncio.gather(first.drain(transport), second.drain(transport))
                await asyncio.sleep(0.2)
                transport.gate.set()
                return await drains

            results = asyncio.run(_both())

            assert transport.calls_to(TRANSACTIONS) == 1
            assert sum(len(r.succeeded) for r in results) == 1
            assert len(first) == 0
        finally:
            first.close()
            second.close()

    def test_lease_released_after_drain(self, tmp_path, transport: FakeTransport) -> None:
        queue = MutationQueue(tmp_path / "shared")
        try:
            asyncio.run(queue.drain(transport))
            assert not queue.is_draining
        finally:
            queue.close()

    def test_lease_released_after_failure(self, tmp_path) -> None:
        class BrokenTransport:
            async def send(self, request):
                raise RuntimeError("boom")

        queue = MutationQueue(tmp_path / "shared")
        try:
            queue.enqueue(_post(TRANSACTIONS, {}))
            with pytest.raises(RuntimeError):
                asyncio.run(queue.drain(BrokenTransport()))
            assert not queue.is_draining
            assert len(queue) == 1
        finally:
            queue.close()


class TestResourceGroups:
    def test_item_path_belongs_to_collection(self, queue: MutationQueue) -> None:
        assert queue.resource_of(_post(f"{TRANSACTIONS}/5", {})) == "/api/transactions"
        assert queue.resource_of(_post(TRANSACTIONS, {})) == "/api/transactions"
        assert queue.resource_of(_post(f"{BASE_URL}/contact", {})) == "/contact"

    def test_failed_collection_write_holds_item_writes(
        self, queue: MutationQueue, transport: FakeTransport
    ) -> None:
        transport.offline_urls.add(TRANSACTIONS)
        transport.route(f"{TRANSACTIONS}/5", make_response(status_code=200))
        transport.route(BUDGETS, make_response(status_code=201))
        queue.enqueue(_post(TRANSACTIONS, {"amount": 1}))
        queue.enqueue(
            CachedRequest(method="PUT", url=f"{TRANSACTIONS}/5", body=b'{"amount": 2}')
        )
        queue.enqueue(_post(BUDGETS, {}))

        result = asyncio.run(queue.drain(transport))

        assert transport.calls_to(f"{TRANSACTIONS}/5") == 0
        assert len(result.succeeded) == 1
        assert [m.request.method for m in queue.pending()] == ["POST", "PUT"]

    def test_custom_api_prefix(self, tmp_path) -> None:
        queue = MutationQueue(tmp_path / "q", api_prefix="/v2")
        try:
            assert queue.resource_of(_post(f"{BASE_URL}/v2/items/9", {})) == "/v2/items"
        finally:
            queue.close()
