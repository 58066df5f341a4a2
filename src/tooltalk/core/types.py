"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class EndpointBackend(StrEnum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class StorageBackend(StrEnum):
    SQLITE = "sqlite"
    MEMORY = "memory"


class EvictionPolicy(StrEnum):
    INSERTION = "insertion"  # oldest-inserted first
    ACCESS = "access"  # least recently used first
