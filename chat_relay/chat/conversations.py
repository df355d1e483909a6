from __future__ import annotations

CONVERSATION_ID_SEPARATOR = "-"


def derive_conversation_id(first_user_id: object, second_user_id: object) -> str:
    """Return the thread id shared by two participants.

    Ids are compared as strings so the result does not depend on argument
    order: ``derive_conversation_id(a, b) == derive_conversation_id(b, a)``.
    Every code path that addresses a conversation (send, history) must go
    through this function or threads fork.
    """

    parts = sorted([str(first_user_id), str(second_user_id)])
    return CONVERSATION_ID_SEPARATOR.join(parts)
