"""
📨 Message Triage Engine
------------------------
Extract contact details from a message, draft a reply with AI, send it over
WhatsApp and log the interaction to a Google Sheet.
"""

from .config import settings

__all__ = ["settings"]
