"""
yammer2slack - Relay Yammer conversations into Slack

Polls Yammer feeds with an OAuth2 token, creates one Slack channel per
network and group on demand, and mirrors every Yammer thread as a Slack
thread in that channel.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
