from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv(override=True)

class Settings(BaseSettings):
    PROJECT_NAME: str = "Relay Agent Auth"
    # Application settings
    PORT: int | None = 8000
    HOST: str | None = "127.0.0.1"
    VERSION: str | None = "0.1.0"
    LOG_LEVEL: str = "INFO"
    DOC_PASSWORD: str | None = None

    # SSL settings
    SSL_KEY: str | None = None
    SSL_CERT: str | None = None

    # SQLAlchemy database URL
    DATABASE_URL: str = "sqlite:///./relay_agent.db"

    # Login configuration
    ENCODE_KEY: str | None = None
    ENCODE_ALGORITHM: str | None = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE: str = "15m"
    JWT_REFRESH_TOKEN_EXPIRE: str = "30d"
    NONCE_EXPIRY_SECONDS: int = 300 # 5 minutes
    SIGNATURE_EXPIRES_IN: int = 300 # max age of a structured message issuedAt

    # SIWA message expectations
    AUTH_MESSAGE_DOMAIN: str = "relay-agent.io"
    AUTH_MESSAGE_STATEMENT: str = "Sign in to Relay Agent to access DeFi services on Aptos"
    AUTH_ALLOW_LEGACY_MESSAGES: bool = True
    AUTH_REQUIRE_KEY_ADDRESS_MATCH: bool = True
    AUTH_STRICT_SINGLE_USE_NONCE: bool = False

    # Embedded wallet
    APTOS_NETWORK: str = "testnet"
    WALLET_ENCRYPTION_KEY: str | None = None
    WALLET_ENCRYPTION_KEY_OLD: str = "" # comma separated, decrypt only

    # Redis settings, empty host means in-process memory store
    REDIS_HOST: str | None = None
    REDIS_PORT: int | None = 6379
    REDIS_PASSWORD: str | None = None
    REDIS_MAX_CONNECTIONS: int | None = 50
    REDIS_SSL: bool | None = False
    CACHE_PREFIX: str = "relay-agent"

    # Rate limits (requests per window)
    RATE_LIMIT_ENABLED: bool = True
    NONCE_RATE_LIMIT: int = 10
    NONCE_RATE_WINDOW_SECONDS: int = 60
    VERIFY_RATE_LIMIT: int = 5
    VERIFY_RATE_WINDOW_SECONDS: int = 60
    REFRESH_RATE_LIMIT: int = 20
    REFRESH_RATE_WINDOW_SECONDS: int = 3600
    TRUSTED_PROXIES: str = "" # comma separated peer IPs allowed to set X-Forwarded-For

    # Debug settings
    DEBUG: bool = False

    class Config:
        env_file = ".env"

# Instantiate the settings
settings = Settings()
