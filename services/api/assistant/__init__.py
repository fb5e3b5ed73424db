"""
Campus assistant: Claude answers restricted to NTU topics, grounded on the
knowledge-base documents (attached files, or retrieved text chunks).
"""

from services.api.assistant.campus_assistant import CampusAssistant, recent_history

__all__ = ["CampusAssistant", "recent_history"]
