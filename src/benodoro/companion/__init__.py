"""Companion device channel."""

from benodoro.companion.channel import CompanionChannel, CompanionError, HttpCompanionChannel

__all__ = ["CompanionChannel", "CompanionError", "HttpCompanionChannel"]
