"""Constants and configuration for popcall."""

# Probe settings
DEFAULT_PROBE_TIMEOUT_MS = 1500
UNREACHABLE_LATENCY = -1

# POP used when no probe produced a usable latency
FALLBACK_POP = "BE"

# Authentication service
AUTH_SERVER_URL = "https://webrtc.voxbone.com/rest/authentication/createToken"
DEFAULT_AUTH_TIMEOUT = 5.0

# Outgoing call settings
CALL_DOMAIN = "voxout.voxbone.com"
AGENT_URI = "voxrtc@voxbone.com"
POP_HEADER = "X-Voxbone-Pop"
CONTEXT_HEADER = "X-Voxbone-Context"

# Media sink identifiers
AUDIO_SINK = "peer-audio"
VIDEO_SINK = "peer-video"

# Capability check policy
MIN_FIREFOX_VERSION = 23

# User agent for HTTP requests
USER_AGENT = "popcall/0.1.0"

# Latency color thresholds for terminal output (milliseconds)
LATENCY_THRESHOLDS = {"fast": 50.0, "medium": 150.0}
