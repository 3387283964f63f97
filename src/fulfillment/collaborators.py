"""
External collaborator interfaces.

The engine talks to the chat platform and the payment provider only
through these protocols. Every call is async and may raise; the engine
decides per call site whether a failure is critical.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Protocol, runtime_checkable

ButtonStyle = Literal["primary", "secondary", "success", "danger", "link"]


@dataclass(frozen=True)
class Button:
    label: str
    custom_id: str | None = None
    style: ButtonStyle = "primary"
    url: str | None = None
    emoji: str | None = None
    disabled: bool = False


@dataclass(frozen=True)
class SelectOption:
    label: str
    value: str
    description: str | None = None
    emoji: str | None = None


@dataclass(frozen=True)
class SelectMenu:
    custom_id: str
    placeholder: str
    options: list[SelectOption] = field(default_factory=list)


@dataclass(frozen=True)
class EmbedField:
    name: str
    value: str
    inline: bool = True


@dataclass(frozen=True)
class Embed:
    title: str
    description: str | None = None
    color: int | None = None
    fields: list[EmbedField] = field(default_factory=list)
    image_url: str | None = None
    footer: str | None = None


@dataclass(frozen=True)
class Attachment:
    filename: str
    data: bytes


@dataclass(frozen=True)
class Message:
    """An outgoing chat message."""

    content: str = ""
    embeds: list[Embed] = field(default_factory=list)
    buttons: list[Button] = field(default_factory=list)
    select: SelectMenu | None = None
    attachments: list[Attachment] = field(default_factory=list)

    def button_ids(self) -> list[str]:
        return [b.custom_id for b in self.buttons if b.custom_id]


@dataclass(frozen=True)
class TextInput:
    custom_id: str
    label: str
    placeholder: str | None = None
    required: bool = True


@dataclass(frozen=True)
class Modal:
    """A form shown in response to an interaction."""

    custom_id: str
    title: str
    inputs: list[TextInput] = field(default_factory=list)


@dataclass(frozen=True)
class ChatUser:
    id: str
    username: str
    is_bot: bool = False


@runtime_checkable
class ChatPlatform(Protocol):
    """Chat platform client (channels, messages, members and roles)."""

    async def create_channel(
        self,
        name: str,
        member_ids: list[str],
        topic: str | None = None,
    ) -> str:
        """Create a private text channel visible to ``member_ids``; returns its id."""
        ...

    async def delete_channel(self, channel_id: str, reason: str | None = None) -> None: ...

    async def set_topic(self, channel_id: str, topic: str) -> None: ...

    async def send_message(self, channel_id: str, message: Message) -> str:
        """Post a message; returns the message id."""
        ...

    async def fetch_user(self, user_id: str) -> ChatUser: ...

    async def list_channel_members(self, channel_id: str) -> list[ChatUser]: ...

    async def add_role(self, user_id: str, role_id: str) -> None: ...


@dataclass(frozen=True)
class Charge:
    """An immediate charge created with the payment provider."""

    txid: str
    amount_cents: int
    expires_in: int
    location_id: str | None = None


@dataclass(frozen=True)
class QrCode:
    copy_paste: str
    image_png: bytes | None = None


@runtime_checkable
class PaymentProvider(Protocol):
    """Instant-payment provider."""

    @property
    def enabled(self) -> bool:
        """False when credentials are missing; no charges are attempted."""
        ...

    async def create_charge(self, amount_cents: int, txid: str, expiry_seconds: int) -> Charge: ...

    async def generate_qr_code(self, charge: Charge) -> QrCode: ...

    async def configure_webhook(self, url: str) -> None: ...


__all__ = [
    "Attachment",
    "Button",
    "ButtonStyle",
    "Charge",
    "ChatPlatform",
    "ChatUser",
    "Embed",
    "EmbedField",
    "Message",
    "Modal",
    "PaymentProvider",
    "QrCode",
    "SelectMenu",
    "SelectOption",
    "TextInput",
]
