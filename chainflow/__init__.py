"""
chainflow: conversational wallet bot

Drives multi-step wallet operations through short text/button exchanges:
- Transfers to an address or to another bot user
- Market swaps with an explicit confirmation gate
- Event ticket and custom asset creation wizards

Interfaces:
- Bot: Telegram bot adapter
- API: FastAPI conversation endpoints
"""

__version__ = "0.1.0"
