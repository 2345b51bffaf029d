"""
AI Defender - Tray Control Client

This package provides the user-session client for the AI Defender agent:
- Status monitoring from the agent's state files
- Kill switch control through the agent executable
- Learning / Strict mode switching
"""

__version__ = "0.1.1a0"
__author__ = "AI Defender Team"
