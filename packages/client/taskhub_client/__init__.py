"""
Taskhub API client.

Wraps an httpx client with the session protocol the server expects: bearer
access tokens, a cookie-borne refresh token, and a single refresh-and-replay
when the access token has expired.
"""

__version__ = "0.1.0"
