"""
Incident Desk

IT incident ticketing backend with:
- Incident lifecycle (open / in_progress / closed transition table)
- Assignment rules (first assignment starts the work)
- Filtered listings and statistics
- Pluggable persistence gateway (in-memory or SQL)
"""

__version__ = "0.1.0"
