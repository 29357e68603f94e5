from .broadcaster import RealtimeBroadcaster

__all__ = ["RealtimeBroadcaster"]
