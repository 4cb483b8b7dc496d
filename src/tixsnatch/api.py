"""Async mtop gateway client using httpx with HTTP/2 and connection pooling.

Every call is signed with the token currently held by the TokenStore. The
gateway reports application errors inside 200-status JSON bodies, so the
envelope is parsed regardless of HTTP status and its ``ret`` codes decide
the outcome:

- SUCCESS            -> envelope returned
- token expiry       -> rotate token from Set-Cookie, retry once
- throttling         -> RateLimited
- stock exhausted    -> SoldOut
- sign/param errors  -> MalformedRequest (fatal)
- anything else      -> UnknownGatewayError (transient)

Retry policy beyond the one-shot token refresh belongs to the caller.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx
import orjson

from tixsnatch.catalog import parse_performs, parse_skus, parse_ticket_list
from tixsnatch.errors import (
    GatewayError,
    MalformedRequest,
    RateLimited,
    SessionExpired,
    SessionInvalid,
    SoldOut,
    TransportError,
    UnknownGatewayError,
)
from tixsnatch.models import (
    Endpoint,
    GatewayEnvelope,
    OrderToken,
    PerformItem,
    PurchaseTask,
    SkuItem,
    Ticket,
)
from tixsnatch.signing import BASE_URL, build_signed_request
from tixsnatch.tokens import TokenStore

logger = logging.getLogger(__name__)

CREATE_ORDER = Endpoint(api="mtop.trade.order.build.h5", version="4.0")
SUBMIT_ORDER = Endpoint(api="mtop.trade.order.create.h5", version="4.0")
TICKET_LIST = Endpoint(api="mtop.damai.wireless.search.broadcast.list", version="1.0")
TICKET_DETAIL = Endpoint(api="mtop.alibaba.damai.detail.getdetail", version="1.2")
PERFORM_DETAIL = Endpoint(api="mtop.alibaba.detail.subpage.getdetail", version="2.0")

DM_CHANNEL = "damai@damaih5_h5"

USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 16_6 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.6 Mobile/15E148 Safari/604.1"
)

SUCCESS_CODE = "SUCCESS"

SESSION_EXPIRED_CODES = frozenset({
    "FAIL_SYS_TOKEN_EXOIRED",  # sic, as sent by the gateway
    "FAIL_SYS_TOKEN_EXPIRED",
    "FAIL_SYS_TOKEN_EMPTY",
    "FAIL_SYS_TOKEN_ILLEGAL",
    "FAIL_SYS_SESSION_EXPIRED",
})
RATE_LIMITED_CODES = frozenset({
    "FAIL_SYS_TRAFFIC_LIMIT",
    "FAIL_SYS_FLOWLIMIT",
    "FAIL_SYS_USER_VALIDATE",
    "FAIL_SYS_SERVLET_ASYNC_TIMEOUT",
})
MALFORMED_CODES = frozenset({
    "FAIL_SYS_ILLEGAL_ACCESS",
    "FAIL_SYS_PARAMINVALID_ERROR",
    "FAIL_SYS_PARAM_MISSING",
    "FAIL_SYS_PARAM_FORMAT_ERROR",
    "FAIL_SYS_API_NOT_FOUNDED",
    "FAIL_SYS_API_UNAUTHORIZED",
})
SOLD_OUT_MARKERS = ("SOLD_OUT", "STOCK", "库存不足", "售罄", "已售完", "没有库存")


def classify_code(code: str) -> type[GatewayError] | None:
    """Map one ``CODE::message`` string to an error class (None = success)."""
    name, _, message = code.partition("::")
    name = name.strip()
    if name == SUCCESS_CODE:
        return None
    if name in SESSION_EXPIRED_CODES:
        return SessionExpired
    if name in RATE_LIMITED_CODES:
        return RateLimited
    if name in MALFORMED_CODES:
        return MalformedRequest
    upper = name.upper()
    if any(marker in upper or marker in message for marker in SOLD_OUT_MARKERS):
        return SoldOut
    return UnknownGatewayError


def classify_codes(codes: list[str]) -> type[GatewayError] | None:
    """First non-success code decides. An empty list is not a success."""
    if not codes:
        return UnknownGatewayError
    for code in codes:
        outcome = classify_code(code)
        if outcome is not None:
            return outcome
    return None


def set_cookie_fragment(response: httpx.Response) -> str:
    """Collapse Set-Cookie headers into a ``name=value; ...`` fragment."""
    pairs = []
    for header in response.headers.get_list("set-cookie"):
        pair = header.split(";", 1)[0].strip()
        if "=" in pair:
            pairs.append(pair)
    return "; ".join(pairs)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class GatewayClient:
    """
    Async HTTP client for the signed gateway.

    Use as an async context manager to get connection pooling and keep-alive:

        async with GatewayClient(TokenStore(session)) as client:
            token = await client.create_order(task)

    For the snatch itself use snipe_mode=True for tighter timeouts.
    """

    def __init__(
        self,
        tokens: TokenStore,
        base_url: str = BASE_URL,
        snipe_mode: bool = False,
        timeout: float | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._tokens = tokens
        self._base_url = base_url
        self._snipe_mode = snipe_mode
        self._timeout = timeout
        self._clock = clock or _epoch_ms
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> GatewayClient:
        if self._timeout is not None:
            timeout = httpx.Timeout(self._timeout)
        elif self._snipe_mode:
            timeout = httpx.Timeout(3.0, connect=2.0)
        else:
            timeout = httpx.Timeout(10.0, connect=5.0)

        self._client = httpx.AsyncClient(
            http2=True,
            headers=self._base_headers(),
            timeout=timeout,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()

    @staticmethod
    def _base_headers() -> dict[str, str]:
        return {
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
            "Origin": "https://m.damai.cn",
            "Referer": "https://m.damai.cn/",
            "Content-Type": "application/x-www-form-urlencoded",
        }

    # ------------------------------------------------------------------
    # Signed call
    # ------------------------------------------------------------------

    async def call(
        self,
        endpoint: Endpoint,
        query_params: dict[str, str] | None = None,
        payload: Any = None,
    ) -> GatewayEnvelope:
        """Issue one signed call. Raises a GatewayError on any non-success.

        A stale token gets exactly one rotation and one transparent retry.
        """
        envelope, fragment = await self._send(endpoint, query_params, payload or {})
        outcome = classify_codes(envelope.outcome_codes)

        if outcome is SessionExpired:
            logger.info("%s: token expired (%s), rotating", endpoint.api, envelope.outcome_codes)
            self._tokens.rotate(fragment)
            envelope, _ = await self._send(endpoint, query_params, payload or {})
            outcome = classify_codes(envelope.outcome_codes)
            if outcome is SessionExpired:
                raise SessionInvalid(
                    "Session still expired after token rotation",
                    codes=envelope.outcome_codes,
                )

        if outcome is not None:
            raise outcome(codes=envelope.outcome_codes)
        return envelope

    async def _send(
        self,
        endpoint: Endpoint,
        query_params: dict[str, str] | None,
        payload: Any,
    ) -> tuple[GatewayEnvelope, str]:
        assert self._client is not None
        token = self._tokens.current()
        signed = build_signed_request(
            endpoint, token.value, self._clock(), payload, base_url=self._base_url
        )
        params = {**(query_params or {}), **signed.params}

        try:
            resp = await self._client.get(
                signed.url,
                params=params,
                headers={"Cookie": self._tokens.cookie_header()},
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"{endpoint.api}: timed out ({e.__class__.__name__})") from e
        except httpx.TransportError as e:
            raise TransportError(f"{endpoint.api}: {e}") from e

        try:
            body = orjson.loads(resp.content)
        except orjson.JSONDecodeError as e:
            raise UnknownGatewayError(
                f"{endpoint.api}: HTTP {resp.status_code} with unparseable body"
            ) from e
        if not isinstance(body, dict):
            raise UnknownGatewayError(f"{endpoint.api}: unexpected envelope type")

        envelope = GatewayEnvelope(
            outcome_codes=[str(c) for c in body.get("ret") or []],
            payload=body.get("data"),
        )
        logger.debug("%s -> HTTP %d %s", endpoint.api, resp.status_code, envelope.outcome_codes)
        return envelope, set_cookie_fragment(resp)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def create_order(self, task: PurchaseTask) -> OrderToken:
        """Mint a single-use order token for (sku_id, quantity)."""
        payload = {
            "buyNow": True,
            "buyParam": f"{task.ticket_id}_{task.quantity}_{task.sku_id}",
            "exParams": orjson.dumps({
                "channel": "damai_app",
                "damai": "1",
                "atomSplit": 1,
                "serviceVersion": "2.0.0",
                "performId": task.perform_id,
            }).decode(),
            "dmChannel": DM_CHANNEL,
        }
        envelope = await self.call(CREATE_ORDER, payload=payload)
        data = envelope.payload if isinstance(envelope.payload, dict) else {}
        value = data.get("orderToken")
        if not value:
            raise UnknownGatewayError("Order creation succeeded without an order token")
        return OrderToken(value=str(value))

    async def submit_order(self, task: PurchaseTask, order_token: OrderToken) -> str:
        """Submit the order token. Returns the gateway's order reference."""
        payload = {
            "orderToken": order_token.value,
            "itemId": task.ticket_id,
            "performId": task.perform_id,
            "skuId": task.sku_id,
            "quantity": task.quantity,
            "realNames": list(task.real_names),
            "dmChannel": DM_CHANNEL,
        }
        envelope = await self.call(SUBMIT_ORDER, payload=payload)
        data = envelope.payload if isinstance(envelope.payload, dict) else {}
        order_ref = data.get("bizOrderId")
        if not order_ref:
            raise UnknownGatewayError("Order submission succeeded without an order reference")
        return str(order_ref)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def fetch_tickets(self) -> list[Ticket]:
        """Concert tickets on sale today or opening soon."""
        envelope = await self.call(
            TICKET_LIST,
            payload={
                "cityId": "0",
                "pageIndex": 1,
                "pageSize": 50,
                "platform": "8",
                "dmChannel": DM_CHANNEL,
            },
        )
        return parse_ticket_list(envelope.payload)

    async def fetch_performs(self, ticket_id: str) -> list[PerformItem]:
        envelope = await self.call(
            TICKET_DETAIL,
            payload={
                "itemId": ticket_id,
                "bizCode": "ali.china.damai",
                "scenario": "itemsku",
                "exParams": orjson.dumps({"dataType": 2, "dataId": "", "privilegeActId": ""}).decode(),
                "dmChannel": DM_CHANNEL,
            },
        )
        return parse_performs(_result_field(envelope))

    async def fetch_skus(self, ticket_id: str, perform_id: str) -> list[SkuItem]:
        envelope = await self.call(
            PERFORM_DETAIL,
            payload={
                "itemId": ticket_id,
                "bizCode": "ali.china.damai",
                "scenario": "itemsku",
                "exParams": orjson.dumps(
                    {"dataType": 2, "dataId": perform_id, "privilegeActId": ""}
                ).decode(),
                "dmChannel": DM_CHANNEL,
            },
        )
        return parse_skus(_result_field(envelope))


def _result_field(envelope: GatewayEnvelope) -> str:
    data = envelope.payload if isinstance(envelope.payload, dict) else {}
    return data.get("result", "")
