"""
Shared test fixtures: scripted ledger and a fake aiohttp session.
"""

import asyncio
from typing import Callable, Dict, List, Optional

import aiohttp
import pytest

from wallet_monitor.api.ledger import LedgerClient
from wallet_monitor.errors import LedgerUnavailable, TransactionNotFound
from wallet_monitor.models import MonitoredAddress, SignatureInfo, TokenTransfer, TransactionDetails


class FakeLedger(LedgerClient):
    """
    In-memory ledger.

    add_transaction() prepends to an address's history, so get_recent_transactions
    behaves like the real most-recent-first listing.
    """

    def __init__(self):
        self.history: Dict[str, List[SignatureInfo]] = {}
        self.balances: Dict[str, float] = {}
        self.details: Dict[str, TransactionDetails] = {}
        self.unavailable: set = set()
        self.broken_details: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.closed = False
        self._slot = 100

    def add_transaction(
        self,
        address: str,
        signature: str,
        delta: Optional[float] = None,
        token_transfers: Optional[List[TokenTransfer]] = None,
        move_balance: bool = True,
    ) -> SignatureInfo:
        self._slot += 1
        info = SignatureInfo(signature=signature, slot=self._slot, block_time=1_700_000_000 + self._slot)
        self.history.setdefault(address, []).insert(0, info)

        changes = {address: delta} if delta is not None else {}
        self.details[signature] = TransactionDetails(
            signature=signature,
            success=True,
            fee=0.000005,
            slot=self._slot,
            block_time=info.block_time,
            balance_changes=changes,
            token_transfers=list(token_transfers or []),
        )
        if delta is not None and move_balance:
            self.balances[address] = self.balances.get(address, 0.0) + delta
        return info

    async def get_balance(self, address: str) -> float:
        self.calls.append(("get_balance", address))
        if address in self.unavailable:
            raise LedgerUnavailable(f"ledger down for {address}", method="getBalance")
        return self.balances.get(address, 0.0)

    async def get_recent_transactions(self, address: str, limit: int) -> List[SignatureInfo]:
        self.calls.append(("get_recent_transactions", address, limit))
        if address in self.unavailable:
            raise LedgerUnavailable(f"ledger down for {address}", method="getSignaturesForAddress")
        return list(self.history.get(address, [])[:limit])

    async def get_transaction_details(self, signature: str) -> TransactionDetails:
        self.calls.append(("get_transaction_details", signature))
        if signature in self.broken_details:
            raise self.broken_details[signature]
        if signature not in self.details:
            raise TransactionNotFound(signature)
        return self.details[signature]

    async def close(self) -> None:
        self.closed = True


class FakeResponse:
    def __init__(self, status: int = 200, body=None, text: str = ""):
        self.status = status
        self._body = body
        self._text = text

    async def json(self, content_type=None):
        return self._body

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """
    Stand-in for aiohttp.ClientSession.post.

    `handler(url, payload)` returns a FakeResponse or raises.
    """

    def __init__(self, handler: Callable = None):
        self.handler = handler or (lambda url, payload: FakeResponse(200, {}))
        self.requests: List[dict] = []
        self.closed = False

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers})
        return self.handler(url, json)

    async def close(self):
        self.closed = True

    def urls(self) -> List[str]:
        return [r["url"] for r in self.requests]


def failing_for(bad_url: str, exc: Exception = None) -> Callable:
    """Session handler that raises for one URL and answers 200 for the rest."""
    def handler(url, payload):
        if url == bad_url:
            raise exc or aiohttp.ClientConnectionError("connection refused")
        return FakeResponse(200, {})
    return handler


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def wallet():
    return MonitoredAddress(address="WaLLetAddr1111111111111111111111111111111111", display_name="W", icon="🐋")


@pytest.fixture
def other_wallet():
    return MonitoredAddress(address="OtherAddr22222222222222222222222222222222222", display_name="B", icon="🦈")


@pytest.fixture
def ledger():
    return FakeLedger()
