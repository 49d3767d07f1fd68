from pydantic_settings import BaseSettings

from exceptions import ConfigurationError

# Settings the gateway integration cannot run without, keyed by env variable.
_REQUIRED_MPESA_SETTINGS = {
    "MPESA_BASE_URL": "mpesa_base_url",
    "MPESA_CONSUMER_KEY": "mpesa_consumer_key",
    "MPESA_CONSUMER_SECRET": "mpesa_consumer_secret",
    "MPESA_SHORTCODE": "mpesa_shortcode",
    "MPESA_PASSKEY": "mpesa_passkey",
    "MPESA_CALLBACK_URL": "mpesa_callback_url",
}


class Settings(BaseSettings):
    app_name: str = "Loan Fee Payments API"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./loan_payments.db"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # M-Pesa Daraja gateway
    mpesa_base_url: str = "https://sandbox.safaricom.co.ke"
    mpesa_consumer_key: str = ""
    mpesa_consumer_secret: str = ""
    mpesa_shortcode: str = ""
    mpesa_passkey: str = ""
    mpesa_callback_url: str = ""
    mpesa_transaction_desc: str = "Loan Application Fee"
    mpesa_http_timeout_seconds: float = 30.0
    mpesa_token_safety_margin: float = 30.0

    application_fee: int = 230
    poll_interval_seconds: float = 3.0
    poll_max_duration_seconds: float = 120.0

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def missing_mpesa_settings(self, *names: str) -> list[str]:
        """Return env variable names among `names` (default: all) that are unset."""
        wanted = names or tuple(_REQUIRED_MPESA_SETTINGS)
        return [
            env for env in wanted
            if not str(getattr(self, _REQUIRED_MPESA_SETTINGS[env]) or "").strip()
        ]

    def require_mpesa(self, *names: str) -> None:
        """Raise ConfigurationError listing every missing gateway setting."""
        missing = self.missing_mpesa_settings(*names)
        if missing:
            raise ConfigurationError(
                f"M-Pesa configuration incomplete. Missing: {', '.join(missing)}"
            )


settings = Settings()
