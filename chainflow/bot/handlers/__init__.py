"""Telegram update handlers."""
