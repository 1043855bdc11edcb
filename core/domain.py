"""
Coded-value domains.

Subclass Domain to declare a field's coded values; each member's value is a
(code, display_name) pair:

    class Status(Domain):
        ACTIVE = (1, 'Active')
        RETIRED = (2, 'Retired')

Status.from_code(1) and Status.from_code('1') both return Status.ACTIVE.
"""

from enum import Enum
from typing import Any


class Domain(Enum):
    """Base class for coded-value domains."""

    def __init__(self, code, display_name):
        self.code = code
        self.display_name = display_name

    @classmethod
    def from_code(cls, code: Any) -> 'Domain':
        """Member whose code matches, compared by string form."""
        for member in cls:
            if str(member.code) == str(code):
                return member
        raise ValueError(f"{code!r} is not a code of {cls.__name__}")
