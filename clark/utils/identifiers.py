"""Prefixed CUID identifiers for stored records."""

from cuid2 import cuid_wrapper

cuid = cuid_wrapper()


def new_id(prefix: str) -> str:
    """Generate an identifier like ``msg_<cuid>``."""
    return f"{prefix}_{cuid()}"


def conversation_id() -> str:
    return new_id("conv")


def message_id() -> str:
    return new_id("msg")


def resource_id() -> str:
    return new_id("res")


def connection_id() -> str:
    return new_id("mcp")
