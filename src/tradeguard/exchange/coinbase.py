"""Coinbase Advanced Trade client — REST, HMAC-signed requests.

Only the calls the order router needs are implemented: market orders,
order lookup, account balances and product prices. Errors are mapped onto
the execution error taxonomy:

- transport failures and timeouts          -> NetworkError
- HTTP 4xx/5xx, ``success: false``         -> ExchangeRejected
- ``INSUFFICIENT_FUND`` failures            -> InsufficientFunds
- accepted, unfilled, terminal status      -> ExchangeRejected
- accepted, still pending after polling    -> NetworkError (outcome unknown)
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import json
import time
import uuid
from decimal import Decimal
from typing import Any

import httpx
import structlog

from tradeguard.exchange.base import ExchangeClient
from tradeguard.execution.errors import ExchangeRejected, InsufficientFunds, NetworkError
from tradeguard.models import OrderResult, Side

log = structlog.get_logger("coinbase")

_INSUFFICIENT = ("INSUFFICIENT_FUND", "INSUFFICIENT_FUNDS")
_TERMINAL = frozenset({"FILLED", "CANCELLED", "EXPIRED", "FAILED"})


class CoinbaseClient(ExchangeClient):
    """Async client for the Coinbase Advanced Trade brokerage API."""

    name = "coinbase"

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = "https://api.coinbase.com/api/v3/brokerage",
        timeout_s: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
        fill_poll_interval_s: float = 0.5,
        fill_poll_attempts: int = 3,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url.rstrip("/")
        self._path_prefix = httpx.URL(self.base_url).path
        self._timeout_s = timeout_s
        self._transport = transport
        self._fill_poll_interval_s = fill_poll_interval_s
        self._fill_poll_attempts = fill_poll_attempts
        self._http: httpx.AsyncClient | None = None

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport)
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    # --- Signing ---

    def sign(self, method: str, path: str, body: str = "", timestamp: int | None = None) -> dict[str, str]:
        """Build auth headers: base64(HMAC-SHA256(secret, ts + METHOD + path + body))."""
        ts = str(timestamp if timestamp is not None else int(time.time()))
        message = f"{ts}{method.upper()}{path}{body}".encode()
        key = base64.b64decode(self.api_secret)
        signature = base64.b64encode(hmac.new(key, message, hashlib.sha256).digest()).decode()
        return {
            "CB-ACCESS-KEY": self.api_key,
            "CB-ACCESS-SIGN": signature,
            "CB-ACCESS-TIMESTAMP": ts,
            "Content-Type": "application/json",
        }

    # --- REST ---

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: dict | None = None,
        symbol: str | None = None,
    ) -> Any:
        body = json.dumps(payload) if payload is not None else ""
        headers = self.sign(method, f"{self._path_prefix}{endpoint}", body)
        http = await self._get_http()
        try:
            resp = await http.request(
                method,
                f"{self.base_url}{endpoint}",
                content=body or None,
                headers=headers,
            )
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {endpoint}: {exc!r}", symbol=symbol) from exc

        if resp.status_code >= 400:
            detail = resp.text[:500]
            log.warning("coinbase_http_error", status=resp.status_code, endpoint=endpoint,
                        body=detail)
            if any(code in detail for code in _INSUFFICIENT):
                raise InsufficientFunds(detail, symbol=symbol)
            raise ExchangeRejected(f"HTTP {resp.status_code}: {detail}", symbol=symbol)
        return resp.json()

    async def place_market_order(self, symbol: str, side: Side, amount: Decimal) -> OrderResult:
        """Place an immediate-or-cancel market order sized in base units."""
        order = {
            "client_order_id": str(uuid.uuid4()),
            "product_id": symbol,
            "side": side.upper(),
            "order_configuration": {
                "market_market_ioc": {"base_size": format(amount, "f")},
            },
        }
        data = await self._request("POST", "/orders", order, symbol=symbol)

        if not data.get("success", False):
            error = data.get("error_response") or {}
            code = error.get("error") or data.get("failure_reason") or "UNKNOWN"
            message = error.get("message") or error.get("preview_failure_reason") or code
            if code in _INSUFFICIENT:
                raise InsufficientFunds(message, symbol=symbol)
            raise ExchangeRejected(f"{code}: {message}", symbol=symbol)

        order_id = (data.get("success_response") or {}).get("order_id") or data.get("order_id")
        if not order_id:
            raise ExchangeRejected("order accepted without an order id", symbol=symbol)

        detail = await self.get_order(order_id, symbol=symbol)
        for _ in range(self._fill_poll_attempts):
            if detail.get("status") in _TERMINAL:
                break
            await asyncio.sleep(self._fill_poll_interval_s)
            detail = await self.get_order(order_id, symbol=symbol)

        status = detail.get("status")
        filled = Decimal(detail.get("filled_size") or "0")
        price = Decimal(detail.get("average_filled_price") or "0")
        if filled <= 0 or price <= 0:
            if status in _TERMINAL:
                raise ExchangeRejected(f"order {order_id} not filled (status {status})",
                                       symbol=symbol)
            # Accepted but unconfirmed: the order may still fill on the exchange
            log.error("coinbase_fill_unconfirmed", order_id=order_id, symbol=symbol,
                      status=status)
            raise NetworkError(
                f"order {order_id} accepted but fill not confirmed (status {status})",
                symbol=symbol,
            )
        log.info("coinbase_order_filled", order_id=order_id, symbol=symbol, side=side,
                 filled=str(filled), price=str(price))
        return OrderResult(
            order_id=order_id,
            symbol=symbol,
            side=side,
            filled_amount=filled,
            average_price=price,
            status="filled" if status == "FILLED" else "partially_filled",
        )

    async def get_order(self, order_id: str, symbol: str | None = None) -> dict:
        data = await self._request("GET", f"/orders/historical/{order_id}", symbol=symbol)
        return data.get("order", {})

    async def get_balance(self) -> dict[str, Decimal]:
        data = await self._request("GET", "/accounts")
        balances: dict[str, Decimal] = {}
        for account in data.get("accounts", []):
            value = Decimal(account.get("available_balance", {}).get("value", "0"))
            if value > 0:
                balances[account["currency"]] = balances.get(account["currency"], Decimal("0")) + value
        return balances

    async def get_price(self, symbol: str) -> Decimal:
        data = await self._request("GET", f"/products/{symbol}", symbol=symbol)
        raw = data.get("price")
        if not raw:
            raise ExchangeRejected(f"no price for {symbol}", symbol=symbol)
        return Decimal(raw)
