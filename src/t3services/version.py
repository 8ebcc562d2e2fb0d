"""Client version tracking.

CLIENT_VERSION is sent in the default User-Agent header. Bump it when
request shapes or handshake behavior change, NOT for docs or test-only
commits.
"""

CLIENT_VERSION = "0.3.0"
