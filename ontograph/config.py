"""Configuration management for ontograph."""
import os
from typing import Optional, Dict, Any
from pathlib import Path


class Config:
    """Configuration handler for ontograph."""

    @staticmethod
    def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
        """Get a configuration value from the environment or a .env file.

        Args:
            key: Environment variable key
            default: Default value if key is not found

        Returns:
            str: Value of environment variable or default

        Note:
            The process environment wins over the .env file.
        """
        value = os.environ.get(key)
        if value is not None:
            return value

        env_path = Path('.env')
        if env_path.exists():
            with env_path.open() as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith('#') or '=' not in line:
                        continue
                    k, v = line.split('=', 1)
                    if k.strip() == key:
                        return v.strip().strip('"\'')

        return default

    @staticmethod
    def get_int_env(key: str, default: int) -> int:
        """Get integer environment variable with proper type casting.

        Args:
            key: Environment variable key
            default: Default value if key is not found or invalid

        Returns:
            int: Value of environment variable or default
        """
        value = Config.get_env(key)
        try:
            return int(value) if value is not None else default
        except (ValueError, TypeError):
            return default

    @staticmethod
    def backend() -> str:
        return (Config.get_env('ONTOGRAPH_BACKEND', 'local') or 'local').lower()

    @staticmethod
    def db_path() -> Optional[str]:
        return Config.get_env('ONTOGRAPH_DB_PATH')

    @staticmethod
    def ontology_path() -> Optional[str]:
        return Config.get_env('ONTOGRAPH_ONTOLOGY_PATH')

    @staticmethod
    def cache_backend() -> str:
        return (Config.get_env('ONTOGRAPH_CACHE', 'memory') or 'memory').lower()

    @staticmethod
    def cache_default_ttl() -> int:
        return Config.get_int_env('CACHE_DEFAULT_TTL', 21600)

    @staticmethod
    def query_result_limit() -> int:
        return Config.get_int_env('QUERY_RESULT_LIMIT', 10000)

    @staticmethod
    def log_level() -> str:
        return (Config.get_env('ONTOGRAPH_LOG_LEVEL', 'INFO') or 'INFO').upper()

    @staticmethod
    def get_neo4j_config() -> Dict[str, Any]:
        """Get Neo4j connection configuration from environment."""
        return {
            'uri': Config.get_env('NEO4J_URI', 'bolt://localhost:7687'),
            'username': Config.get_env('NEO4J_USERNAME', 'neo4j'),
            'password': Config.get_env('NEO4J_PASSWORD'),
            'database': Config.get_env('NEO4J_DATABASE'),
        }

    @staticmethod
    def get_redis_config() -> Dict[str, Any]:
        """Get Redis cache configuration from environment.

        Returns:
            Dict containing Redis connection configuration

        Note:
            Will set sensible defaults for non-critical parameters
        """
        return {
            'host': Config.get_env('REDIS_HOST', 'localhost'),
            'port': Config.get_int_env('REDIS_PORT', 6379),
            'password': Config.get_env('REDIS_PASSWORD'),
            'db': Config.get_int_env('REDIS_DB', 0),
        }
