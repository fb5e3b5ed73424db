"""
YouBike package.

Taipei YouBike 2.0 station availability from the city open-data feed, cached
in memory for 60 seconds.
"""

from services.api.youbike.service import YouBikeFeedError, YouBikeService, YouBikeStation

__all__ = ["YouBikeFeedError", "YouBikeService", "YouBikeStation"]
