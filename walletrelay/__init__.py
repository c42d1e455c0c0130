"""Session-bound transaction relay between a producer bot and a wallet approver."""

__version__ = "0.1.0"
