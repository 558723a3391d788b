from __future__ import annotations


class MalformedMessageError(ValueError):
    """Inbound message without a sender id or without any content."""


class DirectiveError(RuntimeError):
    """A strategy produced something the router does not know how to execute."""
