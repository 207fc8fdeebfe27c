"""
消息模块 - 规范化的更新与出站消息
Message module - normalized updates and outbound messages.
"""

from botmaster.message.types import OutgoingMessage, Participant, Update, UpdateMessage

__all__ = ["OutgoingMessage", "Participant", "Update", "UpdateMessage"]
