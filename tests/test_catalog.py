"""Tests for catalog parsing."""

import orjson
import pytest

from tixsnatch.catalog import parse_performs, parse_skus, parse_ticket_list
from tixsnatch.errors import CatalogError


class TestParseTicketList:
    def test_keeps_concerts_from_first_two_modules(self, ticket_list_data):
        tickets = parse_ticket_list(ticket_list_data)

        assert [t.ticket_id for t in tickets] == ["721234567890", "721234567892"]
        assert tickets[0].sale_time == 1760000000000
        assert tickets[1].ticket_name == "Mayday 2026 Tour - Beijing"

    def test_no_category_filter(self, ticket_list_data):
        tickets = parse_ticket_list(ticket_list_data, category=None)
        assert len(tickets) == 3

    def test_skips_invalid_items(self):
        data = {"modules": [{"items": [{"name": "no id"}, {"id": 1, "name": "ok", "categoryName": "演唱会"}]}]}
        assert [t.ticket_id for t in parse_ticket_list(data)] == ["1"]

    def test_empty_modules(self):
        assert parse_ticket_list({"modules": []}) == []

    def test_not_an_object(self):
        with pytest.raises(CatalogError):
            parse_ticket_list(None)

    @pytest.mark.parametrize("modules", [[["not", "a", "module"]], [{"items": "x"}], {"items": []}])
    def test_malformed_modules(self, modules):
        with pytest.raises(CatalogError):
            parse_ticket_list({"modules": modules})

    def test_skips_non_object_items(self):
        data = {"modules": [{"items": ["junk", 7, {"id": 2, "name": "ok", "categoryName": "演唱会"}]}]}
        assert [t.ticket_id for t in parse_ticket_list(data)] == ["2"]


class TestParsePerforms:
    def test_flattens_perform_bases(self, detail_result):
        performs = parse_performs(detail_result)

        assert [p.perform_id for p in performs] == ["211234567", "211234568", "211234569"]
        assert performs[2].perform_name == "2026-05-03 19:30"

    def test_missing_structure(self):
        with pytest.raises(CatalogError, match="performBases"):
            parse_performs('{"detailViewComponentMap": {}}')

    def test_not_json(self):
        with pytest.raises(CatalogError):
            parse_performs("<html>")

    def test_empty(self):
        with pytest.raises(CatalogError):
            parse_performs("")

    @pytest.mark.parametrize(
        "bases",
        [[1], ["text"], [{"performs": [None]}], [{"performs": "x"}], {"performs": []}],
    )
    def test_malformed_perform_bases(self, bases):
        result = orjson.dumps({"detailViewComponentMap": {"item": {"item": {"performBases": bases}}}})
        with pytest.raises(CatalogError):
            parse_performs(result)

    def test_already_decoded_result(self):
        with pytest.raises(CatalogError, match="not a JSON string"):
            parse_performs({"detailViewComponentMap": {}})


class TestParseSkus:
    def test_reads_sku_list(self, perform_result):
        skus = parse_skus(perform_result)

        assert [s.sku_id for s in skus] == ["5012345678901", "5012345678902"]
        assert skus[1].sku_name == "内场 1280元"

    def test_missing_sku_list(self):
        with pytest.raises(CatalogError, match="skuList"):
            parse_skus('{"perform": {}}')

    @pytest.mark.parametrize("sku_list", [["5012345678901"], [None], "5012345678901"])
    def test_malformed_sku_entries(self, sku_list):
        with pytest.raises(CatalogError):
            parse_skus(orjson.dumps({"perform": {"skuList": sku_list}}))

    def test_already_decoded_result(self):
        with pytest.raises(CatalogError):
            parse_skus({"perform": {"skuList": []}})
