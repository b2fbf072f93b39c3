"""
Solana RPC Client

Single responsibility: communicate with a Solana JSON-RPC endpoint.
"""

import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..config import config
from ..errors import LedgerUnavailable, TransactionNotFound
from ..models import SignatureInfo, TokenTransfer, TransactionDetails
from .ledger import LedgerClient

logger = logging.getLogger(__name__)


class SolanaRPCClient(LedgerClient):
    """
    Async client for the Solana JSON-RPC API.

    Handles:
    - Balance, signature listing and transaction detail queries
    - Concurrency control (semaphore) and a delay between requests
    - Rate limiting (429) backoff and retries on connection errors
    """

    def __init__(
        self,
        url: str = None,
        commitment: str = None,
        max_concurrent: int = None,
        request_delay: float = None,
        timeout: float = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url or config.rpc_url
        self.commitment = commitment or config.commitment
        self.max_concurrent = max_concurrent or config.max_concurrent_requests
        self.request_delay = request_delay if request_delay is not None else config.request_delay_sec
        self.timeout = timeout or config.request_timeout_sec
        self._session = session
        self._owns_session = session is None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._ids = itertools.count(1)

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        """Create session and semaphore if needed."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)

    async def close(self):
        """Close the HTTP session if we created it."""
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    async def _request(self, method: str, params: list, retries: int = None) -> Any:
        """
        Make a JSON-RPC call with retry logic.

        Args:
            method: RPC method name
            params: RPC params list
            retries: Number of retries (default from config)

        Returns:
            The "result" member of the response

        Raises:
            LedgerUnavailable: on HTTP, RPC or connection failure after retries
        """
        await self._ensure_session()
        retries = retries if retries is not None else config.max_retries

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        last_error = "no response"

        for attempt in range(retries + 1):
            try:
                async with self._semaphore:
                    async with self._session.post(
                        self.url,
                        json=payload,
                        headers={"Content-Type": "application/json"},
                    ) as response:
                        if response.status == 429:
                            # Rate limited - back off
                            backoff = config.rate_limit_backoff_sec * (2 ** attempt)
                            logger.warning(f"Rate limited on {method}, backing off {backoff}s")
                            last_error = "rate limited"
                            await asyncio.sleep(backoff)
                            continue

                        if response.status != 200:
                            text = await response.text()
                            raise LedgerUnavailable(
                                f"RPC HTTP {response.status} for {method}: {text[:200]}",
                                method=method,
                            )

                        body = await response.json(content_type=None)

                    # Delay AFTER request completes but still inside semaphore
                    if self.request_delay:
                        await asyncio.sleep(self.request_delay)

                if not isinstance(body, dict):
                    raise LedgerUnavailable(f"Malformed RPC response for {method}", method=method)

                if body.get("error"):
                    error = body["error"]
                    message = error.get("message") if isinstance(error, dict) else str(error)
                    raise LedgerUnavailable(f"RPC error for {method}: {message}", method=method)

                return body.get("result")

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = str(e) or type(e).__name__
                logger.error(f"Request error on {method} (attempt {attempt + 1}): {last_error}")
                if attempt < retries:
                    await asyncio.sleep(config.rate_limit_backoff_sec)
                continue

        raise LedgerUnavailable(f"{method} failed after {retries + 1} attempts: {last_error}", method=method)

    # -------------------------------------------------------------------------
    # Public Methods
    # -------------------------------------------------------------------------

    async def get_balance(self, address: str) -> float:
        """
        Get the native balance of an address.

        Args:
            address: Base58 account address

        Returns:
            Balance in SOL
        """
        result = await self._request("getBalance", [address, {"commitment": self.commitment}])
        try:
            lamports = result["value"] if isinstance(result, dict) else result
            return config.lamports_to_native(int(lamports))
        except (KeyError, TypeError, ValueError):
            raise LedgerUnavailable(f"Unexpected getBalance result for {address}: {result!r}", method="getBalance")

    async def get_recent_transactions(self, address: str, limit: int = 10) -> List[SignatureInfo]:
        """
        Get recent transaction signatures for an address, most-recent-first.

        Args:
            address: Base58 account address
            limit: Maximum number of signatures

        Returns:
            List of SignatureInfo
        """
        result = await self._request(
            "getSignaturesForAddress",
            [address, {"limit": limit, "commitment": self.commitment}],
        )
        return parse_signatures(result or [])

    async def get_transaction_details(self, signature: str) -> TransactionDetails:
        """
        Get detailed transaction information.

        Args:
            signature: Transaction signature

        Raises:
            TransactionNotFound: if the node has no record of the signature
        """
        result = await self._request(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self.commitment,
                },
            ],
        )
        if not result:
            raise TransactionNotFound(signature)

        return parse_transaction(signature, result)


# =============================================================================
# Response parsing
# =============================================================================

def parse_signatures(items: List[Dict[str, Any]]) -> List[SignatureInfo]:
    """Parse getSignaturesForAddress entries, skipping malformed ones."""
    signatures = []
    for item in items:
        if not isinstance(item, dict) or not item.get("signature"):
            logger.debug(f"Skipping malformed signature entry: {item!r}")
            continue
        signatures.append(SignatureInfo(
            signature=item["signature"],
            slot=item.get("slot"),
            block_time=item.get("blockTime"),
            err=item.get("err"),
        ))
    return signatures


def _account_keys(tx: Dict[str, Any]) -> List[str]:
    """Account keys of a transaction (jsonParsed objects or plain strings)."""
    message = (tx.get("transaction") or {}).get("message") or {}
    keys = []
    is_parsed = False
    for key in message.get("accountKeys", []):
        if isinstance(key, dict):
            is_parsed = True
            keys.append(key.get("pubkey", ""))
        else:
            keys.append(str(key))

    # v0 transactions in "json" encoding list lookup-table keys separately
    if not is_parsed:
        loaded = (tx.get("meta") or {}).get("loadedAddresses") or {}
        keys.extend(loaded.get("writable", []))
        keys.extend(loaded.get("readonly", []))

    return keys


def extract_balance_changes(tx: Dict[str, Any]) -> Dict[str, float]:
    """Per-account native balance change, non-zero entries only."""
    meta = tx.get("meta")
    if not meta:
        return {}

    keys = _account_keys(tx)
    pre_balances = meta.get("preBalances") or []
    post_balances = meta.get("postBalances") or []

    changes = {}
    for index, (pre, post) in enumerate(zip(pre_balances, post_balances)):
        if index >= len(keys) or not keys[index]:
            continue
        change = post - pre
        if change != 0:
            changes[keys[index]] = config.lamports_to_native(change)

    return changes


def _ui_amount(balance: Optional[Dict[str, Any]]) -> float:
    if not balance:
        return 0.0
    ui = balance.get("uiTokenAmount") or {}
    amount = ui.get("uiAmountString")
    if amount is None:
        amount = ui.get("uiAmount")
    return float(amount or 0)


def extract_token_transfers(tx: Dict[str, Any]) -> List[TokenTransfer]:
    """
    Token balance changes per token account.

    An account that only appears in post balances (created in this
    transaction) or only in pre balances (closed) counts the missing side as 0.
    """
    meta = tx.get("meta")
    if not meta:
        return []

    pre_by_index = {b["accountIndex"]: b for b in meta.get("preTokenBalances") or [] if "accountIndex" in b}
    post_by_index = {b["accountIndex"]: b for b in meta.get("postTokenBalances") or [] if "accountIndex" in b}

    transfers = []
    for index in sorted(set(pre_by_index) | set(post_by_index)):
        pre = pre_by_index.get(index)
        post = post_by_index.get(index)
        change = _ui_amount(post) - _ui_amount(pre)
        if change == 0:
            continue

        reference = post or pre
        ui = reference.get("uiTokenAmount") or {}
        transfers.append(TokenTransfer(
            mint=reference.get("mint", ""),
            amount=change,
            decimals=int(ui.get("decimals") or 0),
            owner=reference.get("owner") or "",
            account_index=index,
        ))

    return transfers


def parse_transaction(signature: str, tx: Dict[str, Any]) -> TransactionDetails:
    """
    Parse a getTransaction result into TransactionDetails.

    Balance and token extraction failures are recorded as a parse warning
    instead of raised, so callers still get status and fee.
    """
    meta = tx.get("meta") or {}
    fee_lamports = meta.get("fee") or 0

    details = TransactionDetails(
        signature=signature,
        slot=tx.get("slot"),
        block_time=tx.get("blockTime"),
        fee=config.lamports_to_native(fee_lamports),
        success=bool(meta) and meta.get("err") is None,
        error=meta.get("err"),
    )

    try:
        details.balance_changes = extract_balance_changes(tx)
    except (KeyError, TypeError, ValueError, IndexError) as e:
        details.parse_warning = f"Could not extract balance changes: {e}"
        logger.debug(f"{signature[:8]}: {details.parse_warning}")

    try:
        details.token_transfers = extract_token_transfers(tx)
    except (KeyError, TypeError, ValueError) as e:
        logger.debug(f"{signature[:8]}: could not extract token transfers: {e}")

    return details
