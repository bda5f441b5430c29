"""
BGP Validator - RIS Live origin collection with RPKI validation.

Subscribes to the RIPE RIS Live BGP UPDATE feed and provides:
- Resilient WebSocket subscription with heartbeat, reconnect and session deadline
- Origin AS and prefix extraction from announcements
- RPKI origin validation against a Routinator-style validity endpoint
- Plain text result file of (origin AS, prefix) facts
"""

__version__ = "0.1.0"
__author__ = "BGP Toolkit Project"
