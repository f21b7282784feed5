"""Conversation engine: sessions, pagination, workflows and dispatching."""
