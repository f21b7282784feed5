"""Telegram transport for the conversation engine."""
