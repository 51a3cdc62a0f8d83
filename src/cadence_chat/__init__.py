"""cadence-chat: assistant chat client with an offline conversation mirror."""

__version__ = "0.1.0"
