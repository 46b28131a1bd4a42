# Remote signals queued per session before the relay reader waits
SESSION_MAILBOX_SIZE = 64

# Seconds to wait for a session to reach Connected
DEFAULT_CONNECT_TIMEOUT = 30.0
