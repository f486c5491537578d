"""wagateway -- HTTP gateway in front of a single chat-protocol session."""

__version__ = "0.1.0"
