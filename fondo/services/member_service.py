"""Member service for Fondo.

Registration and profile data for associates and clients. Credentials and
sessions belong to the hosting backend and are not handled here.
"""
import logging
import re
from datetime import date

from fondo import config
from fondo.data_structures import Member, MemberRole
from fondo.exceptions import MemberNotFoundError, MemberValidationError

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def calculate_age(date_of_birth, today=None):
    """Age in completed years."""
    today = today or date.today()
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


class MemberService:
    """Handles member registration and profiles."""

    def __init__(self, db_manager):
        self.db = db_manager

    def register_member(self, email, name, date_of_birth, role=MemberRole.ASSOCIATE, phone="") -> Member:
        """Register a new member.

        Raises:
            MemberValidationError: On a malformed email, empty name, duplicate
                email, unknown role or an under-age member.
        """
        email = (email or "").strip()
        name = (name or "").strip()
        if not EMAIL_PATTERN.match(email):
            raise MemberValidationError(f"Invalid email: '{email}'", {'email': email})
        if not name:
            raise MemberValidationError("Name is required")
        try:
            role = MemberRole(role)
        except ValueError:
            raise MemberValidationError(f"Unknown role: '{role}'", {'role': role})
        if calculate_age(date_of_birth) < config.MINIMUM_MEMBER_AGE:
            raise MemberValidationError(
                f"Members must be at least {config.MINIMUM_MEMBER_AGE} years old",
                {'date_of_birth': date_of_birth.isoformat()},
            )
        if self.db.get_member_by_email(email) is not None:
            raise MemberValidationError(f"Email already registered: '{email}'", {'email': email})

        member = self.db.add_member(Member(
            id=None, email=email, name=name, role=role,
            date_of_birth=date_of_birth, phone=phone or "",
        ))
        logger.info("Registered %s %s", role.value, member.id)
        return member

    def get_member(self, user_id) -> Member:
        member = self.db.get_member(user_id)
        if member is None:
            raise MemberNotFoundError(user_id)
        return member

    def update_profile(self, user_id, name=None, phone=None) -> Member:
        member = self.get_member(user_id)
        new_name = member.name if name is None else name.strip()
        if not new_name:
            raise MemberValidationError("Name is required")
        new_phone = member.phone if phone is None else phone
        self.db.update_member(user_id, new_name, new_phone)
        return self.get_member(user_id)

    def rate_for(self, user_id):
        """Default annual loan rate (percent) for the member's role."""
        return config.rate_for_role(self.get_member(user_id).role, self.db)
