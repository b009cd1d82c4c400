from .asaas_tools import asaas_fetch_customer_payments, asaas_list_payments
from .dom_tools import dom_fetch_customer_transactions, dom_list_transactions
from .evolution_tools import evolution_fetch_group_messages, to_chat_message
from .llm_tools import LlmError, LlmReply, chat_completion, chat_json

__all__ = [
    "asaas_list_payments", "asaas_fetch_customer_payments",
    "dom_list_transactions", "dom_fetch_customer_transactions",
    "evolution_fetch_group_messages", "to_chat_message",
    "LlmError", "LlmReply", "chat_completion", "chat_json",
]
