"""
Feed collectors.
"""

from .ris_live import RisLiveStream, StreamState, make_subscribe_url

__all__ = ["RisLiveStream", "StreamState", "make_subscribe_url"]
