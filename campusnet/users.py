"""User rows for the identities the identity provider vouches for."""
import base64
import hashlib
import logging
from typing import Optional

from sqlalchemy.orm import Session

from campusnet.errors import ValidationError
from campusnet.models import Role, User, utcnow

logger = logging.getLogger(__name__)

MAX_BIO_LENGTH = 150
MAX_NAME_LENGTH = 30

_AVATAR_SVG = (
    "<svg xmlns='http://www.w3.org/2000/svg' width='100' height='100'>"
    "<rect width='100' height='100' fill='{color}'/>"
    "<text x='50' y='50' font-size='40' fill='white' text-anchor='middle' dy='.3em' "
    "font-family='Arial'>{initials}</text></svg>"
)


def initials_avatar(first_name: str, last_name: str) -> str:
    """Return an SVG data URI showing the user's initials.

    The background hue is stable for a given name.
    """
    initials = f"{first_name[:1]}{last_name[:1]}".upper()
    digest = hashlib.md5(f"{first_name}{last_name}".encode("utf-8")).digest()
    hue = abs(int.from_bytes(digest[:4], "little", signed=True)) % 360
    svg = _AVATAR_SVG.format(color=f"hsl({hue}, 70%, 50%)", initials=initials)
    encoded = base64.b64encode(svg.encode("utf-8")).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def ensure_user(self, user_id: str, first_name: str, last_name: str, role=Role.Student) -> User:
        if not first_name or not last_name or len(first_name) > MAX_NAME_LENGTH or len(last_name) > MAX_NAME_LENGTH:
            raise ValidationError(f"First and last name must be between 1 and {MAX_NAME_LENGTH} characters")

        user = self.db.get(User, user_id)
        if user is None:
            user = User(
                id=user_id,
                first_name=first_name,
                last_name=last_name,
                role=Role(role),
                avatar_url=initials_avatar(first_name, last_name),
                created_at=utcnow(),
            )
            self.db.add(user)
            logger.info("Provisioned user %s", user_id)
        else:
            user.first_name = first_name
            user.last_name = last_name
            user.role = Role(role)
        self.db.commit()
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def update_profile(self, user_id: str, bio: Optional[str], avatar_url: Optional[str] = None) -> bool:
        if bio is not None and len(bio) > MAX_BIO_LENGTH:
            raise ValidationError(f"Bio exceeds maximum length of {MAX_BIO_LENGTH} characters")
        user = self.db.get(User, user_id)
        if user is None:
            return False

        user.bio = bio
        if avatar_url:
            user.avatar_url = avatar_url
        self.db.commit()
        return True

    def touch_last_login(self, user_id: str) -> bool:
        user = self.db.get(User, user_id)
        if user is None:
            return False

        user.last_login = utcnow()
        self.db.commit()
        return True
