"""
Idempotency key helpers for batch actions.

A batch action's idempotency key must stay identical across every
re-submission of the same logical action, so it is derived only from
stable inputs: the originating record (usually the mail id), the
action's position in the originally proposed list, and its type.
"""


def make_action_key(origin_id: str, index: int, action_type: str) -> str:
    """
    Build the idempotency key for one proposed action.

    Format: origin_id:index:action_type

    The key is stored on the execution record under a UNIQUE
    constraint, which is what makes replaying a batch safe.

    Example:
        >>> make_action_key("mail-42", 0, "create_task")
        "mail-42:0:create_task"
    """
    if not origin_id:
        raise ValueError("origin_id is required to build an action key")
    if index < 0:
        raise ValueError(f"Action index must be non-negative, got {index}")
    return f"{origin_id}:{index}:{action_type}"


def parse_action_key(key: str) -> tuple[str, int, str]:
    """
    Split an action key into (origin_id, index, action_type).

    The origin id may itself contain colons, so the key is split from
    the right.

    Raises:
        ValueError: If the key does not have three parts or the index is
            not an integer.
    """
    parts = key.rsplit(":", 2)
    if len(parts) != 3:
        raise ValueError(f"Invalid action key format: {key}")
    origin_id, index, action_type = parts
    try:
        return origin_id, int(index), action_type
    except ValueError:
        raise ValueError(f"Invalid action key index: {key}") from None
