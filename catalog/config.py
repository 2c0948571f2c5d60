from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Product Catalog"
    DATABASE_URL: str = "sqlite:///./catalog.db"

    # JWT signing
    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 168

    # Products with stock strictly below this are reported as low stock
    LOW_STOCK_THRESHOLD: int = 10

    # Max entries returned by the stock history endpoint
    STOCK_HISTORY_LIMIT: int = 50

    # Upper bound for any stock level or mutation quantity
    STOCK_MAX: int = 1_000_000

    # Login throttling per client IP
    LOGIN_RATE_LIMIT: int = 20
    LOGIN_RATE_WINDOW_SECONDS: int = 900

    # Seed user created on first start when the users table is empty
    DEFAULT_ADMIN_EMAIL: str = "admin@example.com"
    DEFAULT_ADMIN_PASSWORD: str = "admin1234"

    # Allowed CORS origins (comma-separated)
    CORS_ORIGINS: str = "*"

    model_config = {"env_file": ".env"}


settings = Settings()
