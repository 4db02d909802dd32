"""Membership roles."""

from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    SURGEON = "surgeon"
    ASSISTANT = "assistant"
