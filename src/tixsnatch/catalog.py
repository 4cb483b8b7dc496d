"""Catalog parsing: ticket list, show instances and price tiers.

Pure transformations over the gateway's catalog payloads. The detail and
subpage endpoints wrap their content in a JSON *string* under ``result``.
Any payload that does not have the expected shape raises CatalogError.
"""

from __future__ import annotations

from typing import Any

import orjson
from pydantic import ValidationError

from tixsnatch.errors import CatalogError
from tixsnatch.models import PerformItem, SkuItem, Ticket

CONCERT_CATEGORY = "演唱会"


def parse_ticket_list(data: Any, category: str | None = CONCERT_CATEGORY) -> list[Ticket]:
    """
    Collect tickets from the "today" and "upcoming" modules.

    Only the first two modules are read; entries whose category does not
    contain ``category`` are skipped (pass None to keep everything).
    """
    if not isinstance(data, dict):
        raise CatalogError("Ticket list payload is not an object")
    modules = _as_list(data.get("modules"), "modules")

    tickets: list[Ticket] = []
    for module in modules[:2]:
        if module is None:
            continue
        items = _as_list(_as_dict(module, "module").get("items"), "items")
        for item in items:
            try:
                ticket = Ticket.model_validate(item)
            except ValidationError:
                continue
            if category and category not in ticket.category_name:
                continue
            tickets.append(ticket)
    return tickets


def parse_performs(result: str | bytes) -> list[PerformItem]:
    info = _load_result(result)
    try:
        bases = info["detailViewComponentMap"]["item"]["item"]["performBases"]
    except (KeyError, TypeError) as e:
        raise CatalogError(f"Detail result missing performBases: {e}") from e

    performs: list[PerformItem] = []
    for base in _as_list(bases, "performBases"):
        for perform in _as_list(_as_dict(base, "performBase").get("performs"), "performs"):
            perform = _as_dict(perform, "perform")
            performs.append(
                PerformItem(
                    perform_id=str(perform.get("performId", "")),
                    perform_name=str(perform.get("performName", "")),
                )
            )
    return performs


def parse_skus(result: str | bytes) -> list[SkuItem]:
    info = _load_result(result)
    try:
        sku_list = info["perform"]["skuList"]
    except (KeyError, TypeError) as e:
        raise CatalogError(f"Perform result missing skuList: {e}") from e

    skus: list[SkuItem] = []
    for sku in _as_list(sku_list, "skuList"):
        sku = _as_dict(sku, "sku")
        skus.append(
            SkuItem(sku_id=str(sku.get("skuId", "")), sku_name=str(sku.get("priceName", "")))
        )
    return skus


def _as_list(value: Any, name: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise CatalogError(f"Catalog field {name} is not a list")
    return value


def _as_dict(value: Any, name: str) -> dict:
    if not isinstance(value, dict):
        raise CatalogError(f"Catalog entry {name} is not an object")
    return value


def _load_result(result: str | bytes) -> dict:
    if not isinstance(result, (str, bytes)):
        raise CatalogError("Catalog result is not a JSON string")
    if not result:
        raise CatalogError("Empty catalog result")
    try:
        info = orjson.loads(result)
    except orjson.JSONDecodeError as e:
        raise CatalogError(f"Catalog result is not JSON: {e}") from e
    if not isinstance(info, dict):
        raise CatalogError("Catalog result is not an object")
    return info
