"""HTTP surface for the conversation engine."""
