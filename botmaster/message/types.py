"""
消息类型 - 入站更新与出站消息的结构
Message types - structure of inbound updates and outbound messages.

更新对象在中间件链中按引用传递，中间件可以原地修改，
后续阶段能看到前面阶段的修改。常用字段有显式定义，
其余字段通过 ``extra="allow"`` 自由附加。
Updates are passed by reference through the middleware chain; middleware
may mutate them in place and later stages observe the mutations. Common
fields are declared explicitly, anything else may be attached freely
thanks to ``extra="allow"``.

平台载荷不做模式校验：字段值符合声明类型时按类型解析，
否则原样保留，交给连接器和中间件自行解释。
Platform payloads are not schema-validated: a field value that fits its
declared type is parsed as such, anything else is kept as given for the
connector and middleware to interpret.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
)


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow")

    @field_validator("*", mode="wrap")
    @classmethod
    def _keep_unparsed(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
        try:
            return handler(value)
        except ValidationError:
            return value


class Participant(_Payload):
    """消息参与者（发送者/接收者）/ Message participant (sender or recipient)."""

    id: str | None = None


class UpdateMessage(_Payload):
    """消息正文 / Message body."""

    # 平台消息 ID
    mid: str | None = None
    text: str | None = None
    attachments: list[dict[str, Any]] = Field(default_factory=list)


class Update(_Payload):
    """
    入站更新 - 平台无关的规范化更新记录
    Inbound update - platform-normalized update record.
    """

    sender: Participant | None = None
    recipient: Participant | None = None
    timestamp: float | None = None
    message: UpdateMessage | None = None
    # 平台原始数据
    raw: dict[str, Any] | None = None

    @classmethod
    def coerce(cls, value: Update | Mapping[str, Any]) -> Update:
        """
        将映射包装为新的更新对象（已是 Update 时原样返回）
        Wrap a mapping into a new update (returned unchanged if already one).

        映射本身不会被修改，中间件修改的是返回的 Update。
        The mapping itself is never mutated; middleware mutates the
        returned Update.
        """
        if isinstance(value, Update):
            return value
        return cls.model_validate(dict(value))


class OutgoingMessage(_Payload):
    """出站消息 / Outbound message."""

    recipient: Participant | None = None
    message: UpdateMessage | None = None

    @classmethod
    def coerce(cls, value: OutgoingMessage | Mapping[str, Any]) -> OutgoingMessage:
        if isinstance(value, OutgoingMessage):
            return value
        return cls.model_validate(dict(value))

    @classmethod
    def text_to(cls, recipient_id: str, text: str) -> OutgoingMessage:
        """构造一条文本消息 / Build a text message."""
        return cls(
            recipient=Participant(id=recipient_id),
            message=UpdateMessage(text=text),
        )
