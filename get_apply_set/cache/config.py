"""
Cache connection configuration.

This module provides the configuration class for the cache connection,
including environment variable support, plus the exceptions raised at the
cache boundary.
"""

import os
import logging
from typing import Optional, Dict, Any
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

SUPPORTED_ENGINES = ("memcached", "valkey", "memory")

# One day, the expiry used for every write
DEFAULT_EXPIRE = 86400


@dataclass
class CacheConfig:
    """
    Configuration class for cache connections with environment variable support.

    The engine selects the client library: memcached (pymemcache), valkey, or
    the in-process memory store.
    """

    engine: str = "memcached"
    host: str = "localhost"
    port: int = 11211
    password: Optional[str] = None
    expire: int = DEFAULT_EXPIRE
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0

    def __post_init__(self):
        self.engine = self.engine.lower()
        if self.engine not in SUPPORTED_ENGINES:
            raise ConfigurationError(
                f"Unsupported cache engine: {self.engine} "
                f"(expected one of {', '.join(SUPPORTED_ENGINES)})"
            )
        if self.expire < 0:
            raise ConfigurationError(f"Expiry must be non-negative, got {self.expire}")

    @classmethod
    def from_env(cls, **overrides: Any) -> "CacheConfig":
        """
        Create CacheConfig from environment variables.

        Args:
            **overrides: Explicit values that win over the environment

        Returns:
            CacheConfig: Configuration instance with values from environment
        """
        values = {
            "engine": os.getenv("CACHE_ENGINE", "memcached"),
            "host": os.getenv("CACHE_HOST", "localhost"),
            "port": int(os.getenv("CACHE_PORT", "11211")),
            "password": os.getenv("CACHE_PASSWORD") or None,
            "expire": int(os.getenv("CACHE_EXPIRE", str(DEFAULT_EXPIRE))),
            "socket_timeout": float(os.getenv("CACHE_SOCKET_TIMEOUT", "5.0")),
            "socket_connect_timeout": float(os.getenv("CACHE_SOCKET_CONNECT_TIMEOUT", "5.0")),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def to_connection_kwargs(self) -> Dict[str, Any]:
        """
        Convert configuration to client connection parameters for the engine.

        Returns:
            Dict[str, Any]: Keyword arguments for the engine's client class
        """
        if self.engine == "memcached":
            return {
                "server": (self.host, self.port),
                "connect_timeout": self.socket_connect_timeout,
                "timeout": self.socket_timeout,
                "default_noreply": False,
            }

        kwargs = {
            "host": self.host,
            "port": self.port,
            "socket_timeout": self.socket_timeout,
            "socket_connect_timeout": self.socket_connect_timeout,
            "decode_responses": False,
        }
        if self.password:
            kwargs["password"] = self.password
        return kwargs

    def __str__(self) -> str:
        """String representation hiding sensitive information."""
        password_display = "***" if self.password else "None"
        return (
            f"CacheConfig(engine={self.engine}, host={self.host}, port={self.port}, "
            f"password={password_display}, expire={self.expire})"
        )


class ConfigurationError(Exception):
    """Raised when the run or cache configuration is invalid."""
    pass


class CacheError(Exception):
    """Base exception for failures reported by the cache collaborator."""
    pass


class CacheConnectionError(CacheError):
    """Raised when the cache server cannot be reached or drops the connection."""
    pass
