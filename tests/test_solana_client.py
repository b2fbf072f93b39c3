"""
Tests for the Solana JSON-RPC client and its response parsers.
"""

import aiohttp
import pytest

from conftest import FakeResponse, FakeSession, run
from wallet_monitor.api import (
    SolanaRPCClient,
    extract_balance_changes,
    extract_token_transfers,
    parse_signatures,
    parse_transaction,
)
from wallet_monitor.config import config
from wallet_monitor.errors import LedgerUnavailable, TransactionNotFound

WALLET = "WaLLetAddr1111111111111111111111111111111111"
OTHER = "OtherAddr22222222222222222222222222222222222"
SYSTEM_PROGRAM = "11111111111111111111111111111111"


def token_balance(index, owner, amount):
    return {
        "accountIndex": index,
        "mint": "MintA",
        "owner": owner,
        "uiTokenAmount": {"uiAmountString": amount, "decimals": 6},
    }


TRANSFER_TX = {
    "slot": 250,
    "blockTime": 1_700_000_000,
    "meta": {
        "err": None,
        "fee": 5000,
        "preBalances": [10_000_000_000, 1_000_000_000, 1],
        "postBalances": [7_999_995_000, 3_000_000_000, 1],
        "preTokenBalances": [token_balance(3, WALLET, "5")],
        "postTokenBalances": [token_balance(3, WALLET, "2"), token_balance(4, OTHER, "3")],
    },
    "transaction": {
        "message": {
            "accountKeys": [
                {"pubkey": WALLET, "signer": True, "writable": True},
                {"pubkey": OTHER, "signer": False, "writable": True},
                {"pubkey": SYSTEM_PROGRAM, "signer": False, "writable": False},
            ]
        }
    },
}


class TestParsers:

    def test_parse_signatures_skips_malformed(self):
        items = [
            {"signature": "S2", "slot": 11, "blockTime": 1_700_000_100, "err": None},
            {"slot": 10},
            "junk",
            {"signature": "S1", "slot": 9, "err": {"InstructionError": [0, "Custom"]}},
        ]
        signatures = parse_signatures(items)
        assert [s.signature for s in signatures] == ["S2", "S1"]
        assert signatures[0].block_time == 1_700_000_100
        assert signatures[0].succeeded
        assert not signatures[1].succeeded

    def test_balance_changes_in_native_units(self):
        changes = extract_balance_changes(TRANSFER_TX)
        assert changes == {WALLET: pytest.approx(-2.000005), OTHER: pytest.approx(2.0)}
        assert SYSTEM_PROGRAM not in changes

    def test_loaded_addresses_for_plain_keys(self):
        tx = {
            "meta": {
                "preBalances": [5, 0, 0],
                "postBalances": [5, 0, 1_000_000_000],
                "loadedAddresses": {"writable": [WALLET], "readonly": []},
            },
            "transaction": {"message": {"accountKeys": [OTHER, SYSTEM_PROGRAM]}},
        }
        assert extract_balance_changes(tx) == {WALLET: 1.0}

    def test_token_transfers_treat_missing_side_as_zero(self):
        transfers = extract_token_transfers(TRANSFER_TX)
        assert [(t.account_index, t.owner, t.amount) for t in transfers] == [
            (3, WALLET, -3.0),
            (4, OTHER, 3.0),
        ]
        assert transfers[0].mint == "MintA"
        assert transfers[0].decimals == 6

    def test_closed_token_account(self):
        tx = {"meta": {"preTokenBalances": [token_balance(2, WALLET, "1.5")], "postTokenBalances": []}}
        transfers = extract_token_transfers(tx)
        assert [(t.account_index, t.amount) for t in transfers] == [(2, -1.5)]

    def test_parse_transaction(self):
        details = parse_transaction("SIG", TRANSFER_TX)
        assert details.signature == "SIG"
        assert details.success
        assert details.fee == pytest.approx(0.000005)
        assert details.slot == 250
        assert details.block_time == 1_700_000_000
        assert details.balance_changes[WALLET] == pytest.approx(-2.000005)
        assert len(details.token_transfers) == 2
        assert details.parse_warning is None

    def test_failed_transaction(self):
        tx = dict(TRANSFER_TX, meta=dict(TRANSFER_TX["meta"], err={"InstructionError": [0, "Custom"]}))
        details = parse_transaction("SIG", tx)
        assert not details.success
        assert details.error == {"InstructionError": [0, "Custom"]}

    def test_missing_meta(self):
        details = parse_transaction("SIG", {"slot": 1, "transaction": {}})
        assert not details.success
        assert details.balance_changes == {}
        assert details.token_transfers == []


class TestSolanaRPCClient:

    @pytest.fixture(autouse=True)
    def no_backoff(self, monkeypatch):
        monkeypatch.setattr(config, "rate_limit_backoff_sec", 0)

    def client(self, handler):
        self.session = FakeSession(handler)
        return SolanaRPCClient(url="https://rpc.example.com", request_delay=0, session=self.session)

    def test_get_balance(self):
        client = self.client(lambda url, payload: FakeResponse(200, {
            "jsonrpc": "2.0", "id": payload["id"], "result": {"context": {"slot": 1}, "value": 2_500_000_000},
        }))

        assert run(client.get_balance(WALLET)) == 2.5

        request = self.session.requests[0]
        assert request["url"] == "https://rpc.example.com"
        assert request["json"]["method"] == "getBalance"
        assert request["json"]["params"][0] == WALLET

    def test_get_recent_transactions(self):
        client = self.client(lambda url, payload: FakeResponse(200, {
            "result": [{"signature": "S2", "slot": 2}, {"signature": "S1", "slot": 1}],
        }))

        signatures = run(client.get_recent_transactions(WALLET, 5))

        assert [s.signature for s in signatures] == ["S2", "S1"]
        params = self.session.requests[0]["json"]["params"]
        assert params[0] == WALLET
        assert params[1]["limit"] == 5

    def test_get_transaction_details(self):
        client = self.client(lambda url, payload: FakeResponse(200, {"result": TRANSFER_TX}))

        details = run(client.get_transaction_details("SIG"))

        assert details.balance_changes[OTHER] == pytest.approx(2.0)
        options = self.session.requests[0]["json"]["params"][1]
        assert options["encoding"] == "jsonParsed"
        assert options["maxSupportedTransactionVersion"] == 0

    def test_null_transaction_is_not_found(self):
        client = self.client(lambda url, payload: FakeResponse(200, {"result": None}))
        with pytest.raises(TransactionNotFound):
            run(client.get_transaction_details("SIG"))

    def test_rpc_error(self):
        client = self.client(lambda url, payload: FakeResponse(200, {
            "error": {"code": -32602, "message": "Invalid param: WrongSize"},
        }))
        with pytest.raises(LedgerUnavailable, match="WrongSize") as exc_info:
            run(client.get_balance("bad"))
        assert exc_info.value.method == "getBalance"

    def test_http_error(self):
        client = self.client(lambda url, payload: FakeResponse(500, text="internal error"))
        with pytest.raises(LedgerUnavailable, match="HTTP 500"):
            run(client.get_balance(WALLET))

    def test_rate_limit_is_retried(self):
        responses = [FakeResponse(429), FakeResponse(200, {"result": {"value": 1_000_000_000}})]
        client = self.client(lambda url, payload: responses.pop(0))

        assert run(client.get_balance(WALLET)) == 1.0
        assert len(self.session.requests) == 2

    def test_connection_errors_exhaust_retries(self):
        def handler(url, payload):
            raise aiohttp.ClientConnectionError("connection reset")

        client = self.client(handler)
        with pytest.raises(LedgerUnavailable, match="connection reset"):
            run(client._request("getBalance", [WALLET], retries=2))
        assert len(self.session.requests) == 3

    def test_close_keeps_borrowed_session(self):
        client = self.client(lambda url, payload: FakeResponse(200, {"result": 0}))
        run(client.close())
        assert not self.session.closed
