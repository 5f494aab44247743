"""
Registration Desk – digitize paper registration forms.

A photographed form goes through a vision extraction service, a human
reviews the fields, and the confirmed record is pushed to a spreadsheet
web-hook that acts as the system of record. Local JSON storage keeps
work across restarts; a dashboard merges local and remote rows.
"""

__all__ = [
    "config",
    "logging",
    "paths",
]
