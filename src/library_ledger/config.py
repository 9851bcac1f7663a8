"""Configuration management for the library lending ledger.

Settings are read from ``LIBRARY_LEDGER_*`` environment variables (or a
``.env`` file) and validated with Pydantic v2:
1. Storage - where the ledger database lives
2. Lending policy - default loan period
3. Transactions - retry budget for transient storage conflicts
4. Overdue sweeps - interval and batch size for the background scanner
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerConfig(BaseSettings):
    """Lending ledger configuration.

    Every field can be overridden from the environment, e.g.
    ``LIBRARY_LEDGER_DEFAULT_LOAN_PERIOD_DAYS=21``.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Identity ===

    service_name: str = Field(
        default="library-ledger",
        description="Service name reported in traces",
        pattern=r"^[a-z0-9-]+$",
    )

    # === Database Configuration ===

    database_path: Path = Field(
        default=Path("data/library.db"),
        description="SQLite database file path",
    )

    database_url: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides database_path when set",
    )

    # === Lending Policy ===

    default_loan_period_days: int = Field(
        default=14,
        description="Loan period applied when a borrow request carries no due date",
        ge=1,
        le=365,
    )

    # === Transactions ===

    max_transaction_retries: int = Field(
        default=3,
        description="Retries for a borrow/return transaction hitting a transient conflict",
        ge=0,
        le=20,
    )

    retry_backoff_seconds: float = Field(
        default=0.05,
        description="Initial backoff between transaction retries (doubles each attempt)",
        ge=0.0,
        le=5.0,
    )

    # === Overdue Sweeps ===

    overdue_sweep_interval_seconds: float = Field(
        default=3600.0,
        description="Seconds between scheduled overdue sweeps",
        gt=0.0,
    )

    overdue_sweep_batch_size: int = Field(
        default=100,
        description="Loans promoted per independently committed sweep transaction",
        ge=1,
        le=10_000,
    )

    # === Development Configuration ===

    debug: bool = Field(
        default=False,
        description="Echo SQL statements and enable debug logging",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    # === Tracing ===

    send_traces: bool = Field(
        default=False,
        description="Ship logfire spans to the logfire backend",
    )

    console_traces: bool = Field(
        default=False,
        description="Print logfire spans to the console",
    )

    # === Validation Methods ===

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lowercase level names from the environment."""
        return v.upper() if isinstance(v, str) else v

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Resolve the database path and make sure its directory exists."""
        abs_path = v.absolute()
        abs_path.parent.mkdir(parents=True, exist_ok=True)

        if not abs_path.parent.is_dir():
            raise ValueError(f"Database directory {abs_path.parent} is not accessible")

        return abs_path

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str | None) -> str | None:
        if v is not None and "://" not in v:
            raise ValueError("Database URL must look like dialect://...")
        return v

    # === Computed Properties ===

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug or self.log_level == "DEBUG"

    def get_database_url(self) -> str:
        """Get the SQLAlchemy database URL."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.database_path}"


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: LedgerConfig | None = None


def get_config() -> LedgerConfig:
    """Get or create the process-wide configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = LedgerConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
