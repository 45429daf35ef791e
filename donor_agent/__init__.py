"""
Donor Agent Package

The WhatsApp donor assistant: a LangGraph ReAct agent that answers staff
questions about donors and records donor notes.
"""

from .prompts import build_system_prompt, build_user_prompt
from .tools import create_donor_tools

__all__ = [
    "build_system_prompt",
    "build_user_prompt",
    "create_donor_tools",
]
