"""
MapServices Configuration Package

Public API for loading and validating map services configuration.

Example:
    from RideLink.MapServices.config import load_config

    config = load_config(
        path="mapservices.yaml",
        overrides={"enable_fallback": False},
    )
    config_id = config.config_hash()
"""

from .loader import export_config_schema, load_config
from .models import (
    CacheConfig,
    EndpointsConfig,
    FarePolicy,
    GoogleConfig,
    HttpClientConfig,
    MapServicesConfig,
    MonitoringConfig,
    OfflineConfig,
    OpenRouteServiceConfig,
    ProviderRatePolicy,
)

__all__ = [
    "CacheConfig",
    "EndpointsConfig",
    "FarePolicy",
    "GoogleConfig",
    "HttpClientConfig",
    "MapServicesConfig",
    "MonitoringConfig",
    "OfflineConfig",
    "OpenRouteServiceConfig",
    "ProviderRatePolicy",
    "export_config_schema",
    "load_config",
]
