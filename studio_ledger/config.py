"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class StudioConfig(BaseSettings):
    """Studio ledger configuration"""
    
    # Database configuration
    database_url: str = "sqlite:///studio_ledger.db"  # memory://, sqlite:///path or postgresql://...
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_workers: int = 1
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Ledger rules
    default_page_size: int = 20
    max_page_size: int = 100
    balance_update_retries: int = 3  # Compensating rollback attempts
    
    # Feature flags
    enable_audit_logging: bool = True
    
    class Config:
        env_prefix = "STUDIO_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = StudioConfig()


def get_config() -> StudioConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> StudioConfig:
    """Reload configuration from environment"""
    global config
    config = StudioConfig()
    return config
