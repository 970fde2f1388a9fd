class Settings:
    """Centralised application configuration."""

    # ── application ──────────────────────────────────────────────
    APP_NAME    = "SecureForward"
    APP_VERSION = "1.0.0"
    CLIENT_PROGRAM = "forward_client"
    SERVER_PROGRAM = "forward_server"

    # ── handshake endpoint ───────────────────────────────────────
    DEFAULT_HANDSHAKE_HOST = "localhost"
    DEFAULT_HANDSHAKE_PORT = 2206
    HANDSHAKE_TIMEOUT      = 30        # seconds, per round trip
    PROTOCOL_VERSION       = 1

    # ── relay ────────────────────────────────────────────────────
    LISTEN_HOST       = "127.0.0.1"
    BUFFER_SIZE       = 65536
    CONNECT_TIMEOUT   = 10             # seconds
    TEARDOWN_TIMEOUT  = 3              # seconds to join relay threads
    LISTEN_BACKLOG    = 1

    # ── crypto defaults ──────────────────────────────────────────
    DEFAULT_CIPHER    = "AES-256-GCM"
    NONCE_SIZE        = 32             # handshake freshness token
    KEY_MATERIAL_SIZE = 32             # wrapped session key material

    # ── logging ──────────────────────────────────────────────────
    LOG_LEVEL  = "INFO"
    LOG_FORMAT = "[%(asctime)s] [%(levelname)-8s] %(name)s - %(message)s"
    LOG_DATEFMT = "%H:%M:%S"
