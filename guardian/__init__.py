"""
Guardian Link - parent/child location and safety monitor.

Client-side protocol for keeping a parent device and a child device in
sync through a shared realtime key-value store: sessions, location,
presence, SOS and parent-to-child commands.
"""

__version__ = "1.0.0"
