# Default ICE servers for NAT traversal
DEFAULT_ICE_SERVERS = [
    {"urls": "stun:stun.l.google.com:19302"},
]

# Label of the single data channel each session opens
DATA_CHANNEL_LABEL = "gsend"
