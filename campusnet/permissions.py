from campusnet.models import Role

MODERATOR_ROLES = frozenset({Role.Admin, Role.Teacher})


def can_moderate(role) -> bool:
    """Admins and teachers may remove anybody's posts and comments."""
    if role is None:
        return False
    try:
        return Role(role) in MODERATOR_ROLES
    except ValueError:
        return False


def can_delete(author_id: str, requester_id: str, requester_role) -> bool:
    return author_id == requester_id or can_moderate(requester_role)
