"""
Cache package for the Passport service.

Stores each wallet's last known score and when it was fetched. Writes are
upserts that never move the fetch time backwards.
"""
