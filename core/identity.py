from core.logger import SwitchboardLogger

logger = SwitchboardLogger.get_logger()

# Kinds whose payload is a message object (sender lives in from / sender_chat).
_MESSAGE_KINDS: tuple[str, ...] = (
    "message", "edited_message", "channel_post", "edited_channel_post",
    "business_message", "edited_business_message",
)


def get_identity(kind: str, payload: dict) -> int | None:
    """Return the id whose state and rate limit an update belongs to.

    Message-like payloads resolve to ``sender_chat.id`` for anonymous admins
    and channels, otherwise ``from.id``.  Other payloads (callback queries,
    inline queries, poll answers, member updates …) resolve to ``from.id``
    or ``user.id``.  Returns ``None`` when the update has no sender
    (e.g. a channel poll).
    """
    if kind in _MESSAGE_KINDS:
        sender_chat = payload.get("sender_chat")
        if sender_chat:
            return sender_chat.get("id")

    for key in ("from", "user"):
        entity = payload.get(key)
        if isinstance(entity, dict) and entity.get("id") is not None:
            return entity["id"]

    logger.debug("Could not resolve identity from update", extra={"kind": kind})
    return None
