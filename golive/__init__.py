"""
Twitch Go-Live Relay

This package keeps Twitch EventSub "stream.online" subscriptions in sync with
a watch list kept in Airtable and relays the resulting webhook deliveries as
Discord notifications.
"""

__version__ = "1.0.0"
