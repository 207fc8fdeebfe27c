"""
平台适配器
Platform adapters.
"""

from botmaster.gateway.adapters.webhook_adapter import WebhookBot

__all__ = ["WebhookBot"]
