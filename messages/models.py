"""
messages/models.py -- Domain dataclass for contact-form messages.

Pattern: Data class (pure data container, zero logic). MessageStore does the
persistence; actions/messages.py does validation and relaying.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Message:
    name: str
    email: str
    message: str
    id: Optional[int] = None
    created_at: Optional[str] = None
