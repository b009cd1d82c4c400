"""Unit tests for the Asaas, Dom Pagamentos and Evolution API tools."""
import time
from unittest.mock import MagicMock, patch

from schemas import DomCredentials

ASAAS_MODULE = "tools.asaas_tools"
DOM_MODULE = "tools.dom_tools"
EVOLUTION_MODULE = "tools.evolution_tools"


def _response(body):
    resp = MagicMock()
    resp.json.return_value = body
    resp.raise_for_status.return_value = None
    return resp


class TestAsaasListPayments:
    @patch(f"{ASAAS_MODULE}.requests.get")
    def test_follows_pagination(self, mock_get):
        mock_get.side_effect = [
            _response({"data": [{"id": "pay_1"}], "hasMore": True}),
            _response({"data": [{"id": "pay_2"}], "hasMore": False}),
        ]

        from tools.asaas_tools import asaas_list_payments
        result = asaas_list_payments("key", "cus_1", "2026-04-16", "2026-06-15", status="OVERDUE")

        assert [p["id"] for p in result["payments"]] == ["pay_1", "pay_2"]
        assert "error" not in result
        second = mock_get.call_args_list[1].kwargs
        assert second["params"]["offset"] == 100
        assert second["params"]["status"] == "OVERDUE"
        assert second["params"]["dueDate[ge]"] == "2026-04-16"
        assert second["headers"] == {"access_token": "key"}
        assert second["timeout"] == 15

    @patch(f"{ASAAS_MODULE}.requests.get")
    def test_handles_error_gracefully(self, mock_get):
        mock_get.side_effect = RuntimeError("401 Unauthorized")

        from tools.asaas_tools import asaas_list_payments
        result = asaas_list_payments("bad", "cus_1", "2026-04-16", "2026-06-15")

        assert result["payments"] == []
        assert "401" in result["error"]


class TestAsaasFetchCustomerPayments:
    @patch(f"{ASAAS_MODULE}.asaas_list_payments")
    def test_dedups_across_status_groups(self, mock_list):
        mock_list.side_effect = [
            {"payments": [{"id": "pay_1"}, {"id": "pay_2"}]},
            {"payments": [{"id": "pay_2"}]},
            {"payments": [], "error": "timeout"},
        ]

        from tools.asaas_tools import asaas_fetch_customer_payments
        result = asaas_fetch_customer_payments("key", "cus_1", "2026-04-16", "2026-06-15")

        assert [p["id"] for p in result["payments"]] == ["pay_1", "pay_2"]
        assert result["errors"] == ["timeout"]
        assert mock_list.call_count == 3


class TestDomTools:
    @patch(f"{DOM_MODULE}.requests.get")
    def test_filters_by_document_digits(self, mock_get):
        mock_get.side_effect = [
            _response({
                "data": [
                    {"id": "tx_1", "customer_document": "12.345.678/0001-90"},
                    {"id": "tx_2", "customer": {"document": "99999999000199"}},
                ],
                "last_page": 2,
            }),
            _response({"data": [{"id": "tx_3", "customer": {"document": "12345678000190"}}], "last_page": 2}),
        ]

        from tools.dom_tools import dom_fetch_customer_transactions
        result = dom_fetch_customer_transactions(
            DomCredentials(token="tok", environment="sandbox"),
            "12345678/0001-90", "2026-04-16", "2026-06-15",
        )

        assert [tx["id"] for tx in result["transactions"]] == ["tx_1", "tx_3"]
        assert result["document"] == "12345678000190"
        first_call = mock_get.call_args_list[0]
        assert "hml-apiv3" in first_call.args[0]
        assert first_call.kwargs["headers"]["Authorization"] == "Bearer tok"

    @patch(f"{DOM_MODULE}.requests.get")
    def test_empty_document_does_not_call_api(self, mock_get):
        from tools.dom_tools import dom_fetch_customer_transactions
        result = dom_fetch_customer_transactions(
            DomCredentials(token="tok"), "", "2026-04-16", "2026-06-15"
        )
        assert result["transactions"] == []
        mock_get.assert_not_called()


class TestEvolutionFetchGroupMessages:
    def test_not_configured(self, monkeypatch):
        monkeypatch.delenv("EVOLUTION_API_URL", raising=False)
        monkeypatch.delenv("EVOLUTION_API_KEY", raising=False)
        monkeypatch.delenv("EVOLUTION_INSTANCE", raising=False)

        from tools.evolution_tools import evolution_fetch_group_messages
        result = evolution_fetch_group_messages("120363")

        assert result == {"messages": [], "error": "Evolution API not configured"}

    @patch(f"{EVOLUTION_MODULE}.requests.get")
    def test_stops_at_cutoff(self, mock_get, monkeypatch):
        monkeypatch.setenv("EVOLUTION_API_URL", "https://evo.test")
        monkeypatch.setenv("EVOLUTION_API_KEY", "evo-key")
        now = int(time.time())
        records = [
            {"key": {"participant": "1@s.whatsapp.net"}, "messageTimestamp": now - 3600,
             "message": {"conversation": "oi"}},
            {"key": {"participant": "1@s.whatsapp.net"}, "messageTimestamp": now - 90 * 86400,
             "message": {"conversation": "antiga"}},
        ]
        mock_get.return_value = _response({"messages": {"records": records}})

        from tools.evolution_tools import evolution_fetch_group_messages
        result = evolution_fetch_group_messages("120363", instance="agency1", days=60)

        assert len(result["messages"]) == 1
        mock_get.assert_called_once()
        url = mock_get.call_args.args[0]
        assert url.startswith("https://evo.test/chat/findMessages/agency1")
        assert "120363%40g.us" in url

    @patch(f"{EVOLUTION_MODULE}.requests.get")
    def test_later_page_failure_keeps_collected(self, mock_get, monkeypatch):
        monkeypatch.setenv("EVOLUTION_API_URL", "https://evo.test")
        monkeypatch.setenv("EVOLUTION_API_KEY", "evo-key")
        monkeypatch.setenv("EVOLUTION_INSTANCE", "default")
        now = int(time.time())
        page = [{"key": {}, "messageTimestamp": now - i, "message": {"conversation": "x"}} for i in range(100)]
        mock_get.side_effect = [_response(page), RuntimeError("502")]

        from tools.evolution_tools import evolution_fetch_group_messages
        result = evolution_fetch_group_messages("120363@g.us")

        assert len(result["messages"]) == 100
        assert "error" not in result

    @patch(f"{EVOLUTION_MODULE}.requests.get")
    def test_first_page_failure_is_error(self, mock_get, monkeypatch):
        monkeypatch.setenv("EVOLUTION_API_URL", "https://evo.test")
        monkeypatch.setenv("EVOLUTION_API_KEY", "evo-key")
        monkeypatch.setenv("EVOLUTION_INSTANCE", "default")
        mock_get.side_effect = RuntimeError("connection refused")

        from tools.evolution_tools import evolution_fetch_group_messages
        result = evolution_fetch_group_messages("120363")

        assert result["messages"] == []
        assert "connection refused" in result["error"]


class TestToChatMessage:
    def test_text_message(self):
        from tools.evolution_tools import to_chat_message
        message = to_chat_message({
            "key": {"participant": "5511999990000@s.whatsapp.net", "fromMe": True},
            "pushName": "Ana",
            "messageTimestamp": "1780000000",
            "message": {"extendedTextMessage": {"text": "  bom dia  "}},
        })
        assert message.content == "bom dia"
        assert message.sender_display_name == "Ana"
        assert message.timestamp_unix == 1780000000
        assert message.is_from_agency_account is True

    def test_non_text_message_is_dropped(self):
        from tools.evolution_tools import to_chat_message
        assert to_chat_message({"key": {}, "message": {"audioMessage": {}}}) is None

    def test_object_timestamp_is_dropped(self):
        from tools.evolution_tools import to_chat_message
        assert to_chat_message({
            "key": {"participant": "5511999990000@s.whatsapp.net"},
            "messageTimestamp": {"low": 1780000000, "high": 0},
            "message": {"conversation": "oi"},
        }) is None

    def test_suffixed_timestamp_is_dropped(self):
        from tools.evolution_tools import to_chat_message
        assert to_chat_message({
            "key": {},
            "messageTimestamp": "1780000000abc",
            "message": {"conversation": "oi"},
        }) is None
