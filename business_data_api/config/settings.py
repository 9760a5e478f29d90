"""Configuration settings for the business data API."""

import os
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional
from dotenv import load_dotenv

from ..errors import ConfigurationError, ErrorContext

# Load environment variables from .env file if it exists
load_dotenv()

AUTH_METHODS = ("sql_password", "azure_ad")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DEVELOPMENT_ENVIRONMENTS = ("development", "dev", "local")

# name -> ODBC encryption options
STRATEGY_OPTIONS = {
    "plain": "Encrypt=no;TrustServerCertificate=yes;",
    "encrypted": "Encrypt=yes;TrustServerCertificate=yes;",
    "strict": "Encrypt=yes;TrustServerCertificate=no;",
}


class ConnectionStrategy(NamedTuple):
    """One named way of opening the database connection."""
    name: str
    connection_string: str


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class ServerConfig:
    """Server configuration settings."""

    # Database connection settings
    db_server: str
    db_name: str
    db_port: int = 1433
    db_user: Optional[str] = None
    db_password: Optional[str] = None
    db_auth_method: str = "sql_password"  # sql_password, azure_ad
    db_driver: str = "ODBC Driver 18 for SQL Server"
    db_connect_timeout: int = 30  # seconds
    db_query_timeout: int = 30  # seconds
    db_connection_strategies: List[str] = field(default_factory=lambda: ["plain", "encrypted"])

    # HTTP settings
    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = "production"
    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])

    # Discovery settings
    match_column_concepts: bool = True

    # Logging settings
    log_level: str = "INFO"
    log_file: Optional[str] = None
    structured_logging: bool = True

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Create configuration from environment variables."""

        db_server = os.getenv("DB_SERVER")
        db_name = os.getenv("DB_NAME")

        if not db_server:
            context = ErrorContext(operation="load_config", additional_data={"config_key": "DB_SERVER"})
            raise ConfigurationError("DB_SERVER environment variable is required", config_key="DB_SERVER", context=context)
        if not db_name:
            context = ErrorContext(operation="load_config", additional_data={"config_key": "DB_NAME"})
            raise ConfigurationError("DB_NAME environment variable is required", config_key="DB_NAME", context=context)

        db_auth_method = os.getenv("DB_AUTH_METHOD", "sql_password")
        db_user = os.getenv("DB_USER")
        db_password = os.getenv("DB_PASSWORD")

        if db_auth_method == "sql_password" and (not db_user or not db_password):
            context = ErrorContext(operation="load_config", additional_data={"auth_method": db_auth_method})
            raise ConfigurationError(
                "DB_USER and DB_PASSWORD are required for sql_password authentication",
                config_key="DB_USER",
                context=context
            )

        try:
            return cls(
                db_server=db_server,
                db_name=db_name,
                db_port=int(os.getenv("DB_PORT", "1433")),
                db_user=db_user,
                db_password=db_password,
                db_auth_method=db_auth_method,
                db_driver=os.getenv("DB_DRIVER", "ODBC Driver 18 for SQL Server"),
                db_connect_timeout=int(os.getenv("DB_CONNECT_TIMEOUT", "30")),
                db_query_timeout=int(os.getenv("DB_QUERY_TIMEOUT", "30")),
                db_connection_strategies=_split_list(os.getenv("DB_CONNECTION_STRATEGIES", "plain,encrypted")),
                host=os.getenv("HOST", "0.0.0.0"),
                port=int(os.getenv("PORT", "3000")),
                environment=os.getenv("ENVIRONMENT", "production").lower(),
                cors_allow_origins=_split_list(os.getenv("CORS_ALLOW_ORIGINS", "*")),
                match_column_concepts=_env_flag("DISCOVERY_MATCH_COLUMN_CONCEPTS", "true"),
                log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
                log_file=os.getenv("LOG_FILE"),
                structured_logging=_env_flag("STRUCTURED_LOGGING", "true"),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e

    def validate(self) -> None:
        """Validate configuration settings."""
        if not 0 < self.db_port < 65536:
            raise ConfigurationError("db_port must be between 1 and 65535", config_key="db_port")

        if not 0 < self.port < 65536:
            raise ConfigurationError("port must be between 1 and 65535", config_key="port")

        if self.db_connect_timeout <= 0:
            raise ConfigurationError("db_connect_timeout must be positive", config_key="db_connect_timeout")

        if self.db_query_timeout <= 0:
            raise ConfigurationError("db_query_timeout must be positive", config_key="db_query_timeout")

        if self.db_auth_method not in AUTH_METHODS:
            context = ErrorContext(operation="validate_config", additional_data={"value": self.db_auth_method})
            raise ConfigurationError(
                f"db_auth_method must be one of: {', '.join(AUTH_METHODS)}",
                config_key="db_auth_method",
                context=context
            )

        if self.db_auth_method == "sql_password" and (not self.db_user or not self.db_password):
            raise ConfigurationError(
                "db_user and db_password are required for sql_password authentication",
                config_key="db_user"
            )

        if not self.db_connection_strategies:
            raise ConfigurationError("at least one connection strategy is required", config_key="db_connection_strategies")

        unknown = [name for name in self.db_connection_strategies if name not in STRATEGY_OPTIONS]
        if unknown:
            raise ConfigurationError(
                f"unknown connection strategies: {', '.join(unknown)} "
                f"(expected any of: {', '.join(STRATEGY_OPTIONS)})",
                config_key="db_connection_strategies"
            )

        if self.log_level not in LOG_LEVELS:
            context = ErrorContext(operation="validate_config", additional_data={"value": self.log_level})
            raise ConfigurationError(
                f"log_level must be one of: {', '.join(LOG_LEVELS)}",
                config_key="log_level",
                context=context
            )

    @property
    def include_diagnostics(self) -> bool:
        """Whether error responses may carry raw messages and stack traces."""
        return self.environment in DEVELOPMENT_ENVIRONMENTS

    def connection_strategies(self) -> List[ConnectionStrategy]:
        """
        Resolve the ordered ODBC connection strings to try.

        The password never appears in log output; callers log ``name`` only.
        """
        base = (
            f"DRIVER={{{self.db_driver}}};"
            f"SERVER={self.db_server},{self.db_port};"
            f"DATABASE={self.db_name};"
        )
        if self.db_auth_method == "sql_password":
            base += f"UID={{{self._escape_braced(self.db_user)}}};PWD={{{self._escape_braced(self.db_password)}}};"

        return [
            ConnectionStrategy(name, base + STRATEGY_OPTIONS[name])
            for name in self.db_connection_strategies
        ]

    def summary(self) -> dict:
        """Configuration summary without secrets."""
        return {
            "db_server": self.db_server,
            "db_port": self.db_port,
            "db_name": self.db_name,
            "db_auth_method": self.db_auth_method,
            "db_driver": self.db_driver,
            "db_connection_strategies": list(self.db_connection_strategies),
            "environment": self.environment,
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level,
        }

    @staticmethod
    def _escape_braced(value: Optional[str]) -> str:
        # ODBC braced values escape a closing brace by doubling it
        return (value or "").replace("}", "}}")
