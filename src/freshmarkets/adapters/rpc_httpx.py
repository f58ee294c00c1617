from __future__ import annotations
import itertools, logging, httpx
from typing import Any, Sequence
from ..domain.decoding import encode_call
from ..domain.errors import RpcFailure
from ..domain.models import EventLog
from ..domain.value_types import Address, Topic0
from ..ports.rpc import RPCClient

log = logging.getLogger(__name__)

def _to_hex_block(n: int) -> str: return hex(int(n))
def _is_topic_hash(x: str) -> bool: return isinstance(x, str) and x.startswith("0x") and len(x)==66
def _normalize_topic0_list(t0s: Sequence[Topic0]) -> list[str]:
    out: list[str] = []
    for t in t0s:
        s = str(t).strip().lower()
        out.append(s)
    return out

def _build_topics_param(topic0s: Sequence[Topic0]) -> list[list[str]]:
    t0s = _normalize_topic0_list(topic0s)
    if not all(_is_topic_hash(x) for x in t0s):
        raise ValueError(f"Invalid topic0(s): {t0s}")
    return [t0s]

def _hex_int(v: Any) -> int:
    return int(v, 16) if isinstance(v, str) else int(v)

class HttpxRPC(RPCClient):
    def __init__(
        self,
        rpc_url: str,
        timeout_s: float = 20,
        max_conn: int = 64,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self._ids = itertools.count(1)
        self.client = httpx.AsyncClient(
            http2=transport is None,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max_conn//2),
            transport=transport,
        )

    async def __aenter__(self) -> "HttpxRPC":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc":"2.0","id":next(self._ids),"method":method,"params":params}
        try:
            r = await self.client.post(self.rpc_url, json=payload)
            r.raise_for_status()
            data = r.json()
        except httpx.HTTPError as e:
            raise RpcFailure(method, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise RpcFailure(method, f"invalid JSON response ({e})") from e
        if not isinstance(data, dict):
            raise RpcFailure(method, f"unexpected response: {data!r}")
        if "error" in data:
            err = data["error"]
            if isinstance(err, dict):
                raise RpcFailure(method, f"code={err.get('code')} message={err.get('message')}")
            raise RpcFailure(method, str(err))
        if "result" not in data:
            raise RpcFailure(method, "response carries neither result nor error")
        return data["result"]

    async def latest_block(self) -> int:
        res = await self._request("eth_blockNumber", [])
        try:
            return _hex_int(res)
        except (TypeError, ValueError) as e:
            raise RpcFailure("eth_blockNumber", f"bad result {res!r}") from e

    async def chain_id(self) -> int:
        res = await self._request("eth_chainId", [])
        try:
            return _hex_int(res)
        except (TypeError, ValueError) as e:
            raise RpcFailure("eth_chainId", f"bad result {res!r}") from e

    async def get_block(self, number: int) -> dict[str, Any] | None:
        res = await self._request("eth_getBlockByNumber", [_to_hex_block(number), False])
        if res is None:
            return None
        try:
            return {"number": _hex_int(res["number"]), "timestamp": _hex_int(res["timestamp"])}
        except (KeyError, TypeError, ValueError) as e:
            raise RpcFailure("eth_getBlockByNumber", f"malformed block {number}") from e

    async def get_logs(self, address: Address, topic0s: Sequence[Topic0], from_block: int, to_block: int) -> list[EventLog]:
        res = await self._request("eth_getLogs", [{
            "address": str(address).lower(),
            "fromBlock": _to_hex_block(from_block),
            "toBlock": _to_hex_block(to_block),
            "topics": _build_topics_param(topic0s),
        }])
        if not isinstance(res, list):
            raise RpcFailure("eth_getLogs", f"expected a list, got {type(res).__name__}")
        typed: list[EventLog] = []
        for rl in res:
            # Missing topics/data are left for the event decoder to reject.
            try:
                typed.append(EventLog(
                    address=Address(str(rl.get("address") or "").lower()),
                    topics=tuple(str(t).lower() for t in rl.get("topics") or ()),
                    data_hex=str(rl.get("data") or "0x"),
                    block_number=_hex_int(rl["blockNumber"]),
                    tx_hash=str(rl.get("transactionHash") or "").lower(),
                    log_index=_hex_int(rl.get("logIndex") or 0),
                ))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                log.debug("dropping unparseable log entry %r: %s", rl, e)
        return typed

    async def call(self, address: Address, signature: str, args: Sequence[Address] = ()) -> bytes:
        res = await self._request("eth_call", [{"to": str(address), "data": encode_call(signature, args)}, "latest"])
        if not isinstance(res, str):
            raise RpcFailure("eth_call", f"{signature} at {address}: bad result {res!r}")
        try:
            return bytes.fromhex(res[2:] if res[:2].lower() == "0x" else res)
        except ValueError as e:
            raise RpcFailure("eth_call", f"{signature} at {address}: bad hex") from e
