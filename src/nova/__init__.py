"""
NOVA - Voice-driven Personal Assistant

A web assistant featuring:
- Browser speech capture driven by a server-side speech loop
- Local fast-path for arithmetic and date/time questions
- LLM conversation (Gemini via HTTP)
- Per-user assistant customization (name, avatar image)
"""

__version__ = "0.1.0"
__author__ = "NOVA Team"
