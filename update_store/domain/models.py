"""Domain models for Telegram Bot API entities.

All models use Pydantic v2 for validation and accept Bot API JSON payloads
directly. Unknown fields are ignored so newer API versions do not break
ingestion. Nested objects the store treats as opaque (audio, location,
venue, ...) are kept as plain dictionaries.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from update_store.domain.exceptions import ValidationError


class ChatType(str, Enum):
    """Telegram chat type."""

    PRIVATE = "private"
    GROUP = "group"
    SUPERGROUP = "supergroup"
    CHANNEL = "channel"


class UpdateKind(str, Enum):
    """Payload variants of a Telegram update.

    Values match the field names on ``Update``.
    """

    MESSAGE = "message"
    EDITED_MESSAGE = "edited_message"
    CHANNEL_POST = "channel_post"
    EDITED_CHANNEL_POST = "edited_channel_post"
    INLINE_QUERY = "inline_query"
    CHOSEN_INLINE_RESULT = "chosen_inline_result"
    CALLBACK_QUERY = "callback_query"


class TelegramEntity(BaseModel):
    """Base model for Bot API objects."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class User(TelegramEntity):
    """Telegram user or bot."""

    id: int = Field(..., description="Unique user identifier")
    is_bot: bool = Field(default=False, description="True if this user is a bot")
    first_name: str = Field(default="", description="User's first name")
    last_name: str | None = Field(default=None, description="User's last name")
    username: str | None = Field(default=None, description="User's username")
    language_code: str | None = Field(
        default=None, description="IETF language tag of the user's language"
    )


class Chat(TelegramEntity):
    """Telegram chat (private, group, supergroup or channel)."""

    id: int = Field(..., description="Unique chat identifier")
    type: ChatType = Field(..., description="Chat type")
    title: str | None = Field(default=None, description="Title for groups and channels")
    username: str | None = Field(default=None, description="Chat username, if any")
    first_name: str | None = None
    last_name: str | None = None
    all_members_are_administrators: bool = Field(
        default=False, description="True if all members of a group are admins"
    )


class Message(TelegramEntity):
    """Telegram message, channel post, or one of their edited versions."""

    message_id: int = Field(..., description="Message identifier inside the chat")
    from_user: User | None = Field(default=None, alias="from")
    date: int = Field(..., description="Date the message was sent (unix time)")
    chat: Chat
    forward_from: User | None = None
    forward_from_chat: Chat | None = None
    forward_from_message_id: int | None = None
    forward_date: int | None = None
    reply_to_message: "Message | None" = Field(
        default=None, description="Original message for replies (one level deep)"
    )
    edit_date: int | None = Field(
        default=None, description="Date the message was last edited (unix time)"
    )
    media_group_id: str | None = None
    text: str | None = None
    entities: list[dict[str, Any]] | None = None
    audio: dict[str, Any] | None = None
    document: dict[str, Any] | None = None
    photo: list[dict[str, Any]] | None = None
    sticker: dict[str, Any] | None = None
    video: dict[str, Any] | None = None
    voice: dict[str, Any] | None = None
    video_note: dict[str, Any] | None = None
    caption: str | None = None
    contact: dict[str, Any] | None = None
    location: dict[str, Any] | None = None
    venue: dict[str, Any] | None = None
    new_chat_members: list[User] | None = None
    left_chat_member: User | None = None
    new_chat_title: str | None = None
    new_chat_photo: list[dict[str, Any]] | None = None
    delete_chat_photo: bool = False
    group_chat_created: bool = False
    supergroup_chat_created: bool = False
    channel_chat_created: bool = False
    migrate_to_chat_id: int | None = None
    migrate_from_chat_id: int | None = None
    pinned_message: dict[str, Any] | None = None
    connected_website: str | None = None


Message.model_rebuild()


class InlineQuery(TelegramEntity):
    """Incoming inline query."""

    id: str
    from_user: User | None = Field(default=None, alias="from")
    location: dict[str, Any] | None = None
    query: str = ""
    offset: str = ""


class ChosenInlineResult(TelegramEntity):
    """Inline query result chosen by a user."""

    result_id: str
    from_user: User | None = Field(default=None, alias="from")
    location: dict[str, Any] | None = None
    inline_message_id: str | None = None
    query: str = ""


class CallbackQuery(TelegramEntity):
    """Callback query from an inline keyboard button."""

    id: str
    from_user: User | None = Field(default=None, alias="from")
    message: Message | None = None
    inline_message_id: str | None = None
    chat_instance: str | None = None
    data: str = ""


class Update(TelegramEntity):
    """Incoming update. Exactly one payload field is expected to be set."""

    update_id: int
    message: Message | None = None
    edited_message: Message | None = None
    channel_post: Message | None = None
    edited_channel_post: Message | None = None
    inline_query: InlineQuery | None = None
    chosen_inline_result: ChosenInlineResult | None = None
    callback_query: CallbackQuery | None = None

    @property
    def kind(self) -> UpdateKind:
        """Resolve which payload this update carries.

        Raises:
            ValidationError: If no payload or more than one payload is set
        """
        present = [kind for kind in UpdateKind if getattr(self, kind.value) is not None]
        if not present:
            raise ValidationError(f"Update {self.update_id} carries no known payload")
        if len(present) > 1:
            names = ", ".join(kind.value for kind in present)
            raise ValidationError(
                f"Update {self.update_id} carries several payloads: {names}"
            )
        return present[0]

    @property
    def payload(self) -> Message | InlineQuery | ChosenInlineResult | CallbackQuery:
        """Return the payload object selected by ``kind``."""
        return getattr(self, self.kind.value)  # type: ignore[no-any-return]
