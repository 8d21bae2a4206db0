"""
Floraa: AI chat back end with project memory, a multi-agent system,
voice-to-code and an admin/update service.
"""

__version__ = "1.0.0"
