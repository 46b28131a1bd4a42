"""
Configuration constants for file transfers.
"""

# Chunk size: 16 KiB, the largest message every WebRTC stack accepts
DEFAULT_CHUNK_SIZE = 16 * 1024

# Seconds a sender waits for file-accept/file-reject before giving up
DEFAULT_RESPONSE_TIMEOUT = 60.0
