"""Shared test fixtures."""

import json

import pytest

from tixsnatch.models import PurchaseTask, Session


@pytest.fixture
def cookie_header():
    """A realistic logged-in h5 cookie string."""
    return (
        "cna=abcDEF123; "
        "_m_h5_tk=5d41402abc4b2a76b9719d911017c592_1760000000000; "
        "_m_h5_tk_enc=0f1e2d3c4b5a69788796a5b4c3d2e1f0; "
        "cookie2=1c2d3e4f5a6b7c8d9e0f; "
        "munb=2200123456789"
    )


@pytest.fixture
def session(cookie_header):
    return Session(cookie_header=cookie_header, nickname="tester")


@pytest.fixture
def purchase_task():
    """Sale already open so the window wait returns immediately."""
    return PurchaseTask(
        ticket_id="721234567890",
        perform_id="211234567",
        sku_id="5012345678901",
        quantity=2,
        sale_time=1_000_000,
        think_time_ms=10,
        retry_count=3,
        retry_interval_ms=10,
        real_names=["张三", "李四"],
    )


@pytest.fixture
def success_envelope():
    return {
        "api": "mtop.trade.order.build.h5",
        "v": "4.0",
        "ret": ["SUCCESS::调用成功"],
        "data": {"orderToken": "otk_abc123"},
    }


@pytest.fixture
def submit_envelope():
    return {
        "api": "mtop.trade.order.create.h5",
        "v": "4.0",
        "ret": ["SUCCESS::调用成功"],
        "data": {"bizOrderId": "3120000123456789"},
    }


@pytest.fixture
def expired_envelope():
    return {
        "api": "mtop.trade.order.build.h5",
        "v": "4.0",
        "ret": ["FAIL_SYS_TOKEN_EXOIRED::令牌过期"],
        "data": {},
    }


@pytest.fixture
def ticket_list_data():
    """data payload of mtop.damai.wireless.search.broadcast.list."""
    return {
        "modules": [
            {
                "items": [
                    {
                        "id": 721234567890,
                        "name": "Jay Chou Carnival World Tour - Shanghai",
                        "saleTime": 1760000000000,
                        "categoryName": "演唱会",
                    },
                    {
                        "id": 721234567891,
                        "name": "Swan Lake",
                        "saleTime": 1760000100000,
                        "categoryName": "舞蹈芭蕾",
                    },
                ]
            },
            {
                "items": [
                    {
                        "id": "721234567892",
                        "name": "Mayday 2026 Tour - Beijing",
                        "saleTime": 1760100000000,
                        "categoryName": "演唱会",
                    }
                ]
            },
            {
                "items": [
                    {
                        "id": "999",
                        "name": "Ignored module",
                        "saleTime": 1,
                        "categoryName": "演唱会",
                    }
                ]
            },
        ]
    }


@pytest.fixture
def detail_result():
    """data.result string of mtop.alibaba.damai.detail.getdetail."""
    return json.dumps({
        "detailViewComponentMap": {
            "item": {
                "item": {
                    "performBases": [
                        {
                            "performs": [
                                {"performId": 211234567, "performName": "2026-05-01 19:30"},
                                {"performId": 211234568, "performName": "2026-05-02 19:30"},
                            ]
                        },
                        {
                            "performs": [
                                {"performId": "211234569", "performName": "2026-05-03 19:30"},
                            ]
                        },
                    ]
                }
            }
        }
    }, ensure_ascii=False)


@pytest.fixture
def perform_result():
    """data.result string of mtop.alibaba.detail.subpage.getdetail."""
    return json.dumps({
        "perform": {
            "skuList": [
                {"skuId": "5012345678901", "priceName": "看台 480元"},
                {"skuId": "5012345678902", "priceName": "内场 1280元"},
            ]
        }
    }, ensure_ascii=False)
