import ulid


def new_id(prefix: str = "") -> str:
    """
    Generate a sortable, unique string id (ULID) with an optional prefix.
    Used for workflows, steps and connections.
    """
    return prefix + ulid.new().str
