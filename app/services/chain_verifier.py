#app/services/chain_verifier.py
from __future__ import annotations

import logging
from typing import Any, List, Optional

import httpx

from app.core.config import get_settings
from app.schemas.contracts import OnChainInfo

logger = logging.getLogger(__name__)


class ChainRpcError(RuntimeError):
    pass


def _hex_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int(str(value), 16)


class ChainVerifier:
    """
    Read-only receipt lookup over Ethereum JSON-RPC.
    The chain is a fact supplier: lookups never block recording an action.
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        settings = get_settings()
        self.rpc_url = rpc_url or settings.chain_rpc_url
        self.timeout_s = timeout_s if timeout_s is not None else settings.chain_rpc_timeout_seconds
        self.transport = transport

    def _rpc(self, client: httpx.Client, method: str, params: List[Any]) -> Any:
        r = client.post(self.rpc_url, json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params})
        r.raise_for_status()
        data = r.json()
        if not isinstance(data, dict):
            raise ChainRpcError("invalid_response")
        if data.get("error"):
            raise ChainRpcError(f"{method}: {data['error']}")
        return data.get("result")

    def verify_transaction(self, tx_hash: str) -> Optional[OnChainInfo]:
        try:
            with httpx.Client(timeout=self.timeout_s, transport=self.transport) as c:
                receipt = self._rpc(c, "eth_getTransactionReceipt", [tx_hash])
                if not receipt or receipt.get("blockNumber") is None:
                    return None
                block = _hex_int(receipt["blockNumber"])
                latest = _hex_int(self._rpc(c, "eth_blockNumber", []))
                status = "success" if _hex_int(receipt.get("status", "0x0")) == 1 else "failed"
        except (httpx.HTTPError, ChainRpcError, ValueError, TypeError) as exc:
            logger.warning("[chain] verifyTransaction failed tx=%s: %s", tx_hash, exc)
            return None

        return OnChainInfo(status=status, blockNumber=block, confirmations=latest - block + 1)
