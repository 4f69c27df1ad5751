# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.config.models",
#   "purpose": "Pydantic v2 configuration models for the map services layer.",
#   "sections": [
#     {
#       "id": "providerratepolicy",
#       "name": "ProviderRatePolicy",
#       "anchor": "class-providerratepolicy",
#       "kind": "class"
#     },
#     {
#       "id": "mapservicesconfig",
#       "name": "MapServicesConfig",
#       "anchor": "class-mapservicesconfig",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Pydantic v2 Configuration Models for MapServices

Provides strict, typed configuration for every map services subsystem:
- Provider endpoints and client identification
- Paid-provider credentials (OpenRouteService key, Google Maps key)
- HTTP client settings (timeouts, retries)
- Cache location and TTLs per payload kind
- Per-provider rate policies (sliding windows and daily quotas)
- Fare formula constants
- Connectivity probe settings
- Top-level MapServicesConfig as the single immutable settings object

All models use extra="forbid" and frozen=True. Environment variables and
programmatic overrides follow: file < env < overrides precedence.
"""

from __future__ import annotations

import hashlib
import json
import re
from pathlib import Path
from typing import ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_RATE_PATTERN = re.compile(r"^\s*(\d+)\s*/\s*(SECOND|MINUTE|HOUR|DAY)\s*$", re.IGNORECASE)


class EndpointsConfig(BaseModel):
    """Base URLs for free providers and the client identification header."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    nominatim_url: str = Field(
        default="https://nominatim.openstreetmap.org", description="Nominatim base URL"
    )
    openrouteservice_url: str = Field(
        default="https://api.openrouteservice.org/v2", description="OpenRouteService base URL"
    )
    tile_url_template: str = Field(
        default="https://tile.openstreetmap.org/{z}/{x}/{y}.png",
        description="Raster tile URL with {z}/{x}/{y} placeholders",
    )
    fallback_tile_url_template: Optional[str] = Field(
        default=None, description="Secondary tile server used when the primary fails"
    )
    user_agent: str = Field(
        default="RideLink/1.0.0", description="Client identifier sent to every provider"
    )

    @field_validator("nominatim_url", "openrouteservice_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base URLs must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("tile_url_template", "fallback_tile_url_template")
    @classmethod
    def validate_tile_template(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        for placeholder in ("{z}", "{x}", "{y}"):
            if placeholder not in v:
                raise ValueError(f"tile_url_template must contain {placeholder}")
        return v

    @field_validator("user_agent")
    @classmethod
    def validate_user_agent(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("user_agent must not be empty")
        return v


class OpenRouteServiceConfig(BaseModel):
    """Credentials and quota for OpenRouteService."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    api_key: str = Field(default="", description="OpenRouteService API key")
    daily_limit: int = Field(default=2000, description="Free-plan daily request quota")

    @field_validator("daily_limit")
    @classmethod
    def validate_daily_limit(cls, v: int) -> int:
        if v < 0:
            raise ValueError("daily_limit must be >= 0")
        return v


class GoogleConfig(BaseModel):
    """Paid fallback provider (Google Maps Platform)."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    api_key: str = Field(default="", description="Google Maps API key")
    base_url: str = Field(
        default="https://maps.googleapis.com/maps/api", description="Maps API base URL"
    )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        return v.rstrip("/")


class HttpClientConfig(BaseModel):
    """Outbound HTTP client settings."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    timeout_s: float = Field(default=10.0, description="Per-call timeout (seconds)")
    connect_timeout_s: float = Field(default=5.0, description="Connect timeout (seconds)")
    max_retries: int = Field(default=3, description="Transport-level connection retries")

    @field_validator("timeout_s", "connect_timeout_s")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries must be >= 0")
        return v


class CacheConfig(BaseModel):
    """Response cache location and TTLs."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    backend: str = Field(default="sqlite", description="Storage engine: 'sqlite' or 'memory'")
    path: Path = Field(
        default=Path.home() / ".cache" / "ridelink" / "map_cache.sqlite",
        description="SQLite database file",
    )
    tile_ttl_s: int = Field(default=24 * 3600, description="Tile TTL (seconds)")
    geocode_ttl_s: int = Field(default=24 * 3600, description="Geocode TTL (seconds)")
    route_ttl_s: int = Field(default=6 * 3600, description="Route TTL (seconds)")
    sweep_on_startup: bool = Field(default=True, description="Drop expired entries at startup")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if v not in ("sqlite", "memory"):
            raise ValueError("backend must be 'sqlite' or 'memory'")
        return v

    @field_validator("tile_ttl_s", "geocode_ttl_s", "route_ttl_s")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("TTL values must be > 0")
        return v


class ProviderRatePolicy(BaseModel):
    """Sliding-window rates and an optional daily quota for one provider.

    Rates use the ``"<limit>/<UNIT>"`` notation where UNIT is one of
    SECOND, MINUTE, HOUR or DAY, e.g. ``"1/SECOND"`` or ``"40/MINUTE"``.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    rates: List[str] = Field(default_factory=list, description="Sliding-window rate strings")
    daily_quota: Optional[int] = Field(default=None, description="Requests allowed per day")

    @field_validator("rates")
    @classmethod
    def validate_rates(cls, v: List[str]) -> List[str]:
        for rate in v:
            match = _RATE_PATTERN.match(rate)
            if not match:
                raise ValueError(f"invalid rate {rate!r}; expected '<limit>/<SECOND|MINUTE|HOUR|DAY>'")
            if int(match.group(1)) < 1:
                raise ValueError(f"rate limit must be >= 1 in {rate!r}")
        return v

    @field_validator("daily_quota")
    @classmethod
    def validate_quota(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("daily_quota must be >= 0")
        return v


def _default_rate_limits() -> Dict[str, ProviderRatePolicy]:
    return {
        "nominatim": ProviderRatePolicy(rates=["1/SECOND"]),
        "openrouteservice": ProviderRatePolicy(rates=["40/MINUTE"], daily_quota=2000),
        "osm_tiles": ProviderRatePolicy(rates=["2/SECOND"]),
    }


class FarePolicy(BaseModel):
    """Constants of the deterministic fare formula."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    base: float = Field(default=50.0, description="Flat base fare")
    per_km: float = Field(default=15.0, description="Rate per kilometre")
    per_minute: float = Field(default=2.0, description="Rate per whole minute")
    min_fare: float = Field(default=25.0, description="Minimum fare")

    @field_validator("base", "per_km", "per_minute", "min_fare")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("fare constants must be >= 0")
        return v


class OfflineConfig(BaseModel):
    """Connectivity probe settings."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    probe_urls: List[str] = Field(
        default_factory=lambda: ["https://www.google.com", "https://www.cloudflare.com"],
        description="Hosts probed in order; the first reachable one wins",
    )
    probe_timeout_s: float = Field(default=5.0, description="Per-probe timeout (seconds)")
    check_on_start: bool = Field(
        default=True, description="Probe connectivity when a MapServices session starts"
    )

    @field_validator("probe_urls")
    @classmethod
    def validate_probe_urls(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("probe_urls must not be empty")
        return v

    @field_validator("probe_timeout_s")
    @classmethod
    def validate_probe_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("probe_timeout_s must be > 0")
        return v


class MonitoringConfig(BaseModel):
    """Background health checks and alert evaluation."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = Field(default=False, description="Run periodic checks while a session is open")
    interval_s: float = Field(default=300.0, description="Seconds between check cycles")

    @field_validator("interval_s")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval_s must be > 0")
        return v


# ============================================================================
# Top-Level Configuration
# ============================================================================


class MapServicesConfig(BaseModel):
    """
    Single source of truth for MapServices configuration.

    Loaded from file (YAML/JSON), overlaid with environment variables,
    and finally overridden programmatically. Precedence: file < env < overrides.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    endpoints: EndpointsConfig = Field(
        default_factory=EndpointsConfig, description="Provider endpoints"
    )
    openrouteservice: OpenRouteServiceConfig = Field(
        default_factory=OpenRouteServiceConfig, description="OpenRouteService credentials"
    )
    google: GoogleConfig = Field(default_factory=GoogleConfig, description="Paid fallback")
    http: HttpClientConfig = Field(
        default_factory=HttpClientConfig, description="HTTP client configuration"
    )
    cache: CacheConfig = Field(default_factory=CacheConfig, description="Response cache")
    rate_limits: Dict[str, ProviderRatePolicy] = Field(
        default_factory=_default_rate_limits, description="Per-provider rate policies"
    )
    fare: FarePolicy = Field(default_factory=FarePolicy, description="Fare formula")
    offline: OfflineConfig = Field(default_factory=OfflineConfig, description="Connectivity")
    monitoring: MonitoringConfig = Field(
        default_factory=MonitoringConfig, description="Periodic health checks"
    )
    enable_fallback: bool = Field(default=True, description="Allow paid fallback tier")

    @classmethod
    def development(cls) -> "MapServicesConfig":
        """Short timeouts, a single retry, and no paid fallback."""

        return cls(
            http=HttpClientConfig(timeout_s=5.0, max_retries=1),
            enable_fallback=False,
        )

    @classmethod
    def production(cls) -> "MapServicesConfig":
        """All features enabled, including periodic health checks, with the standard timeouts."""

        return cls(
            http=HttpClientConfig(timeout_s=10.0, max_retries=3),
            monitoring=MonitoringConfig(enabled=True),
            enable_fallback=True,
        )

    @property
    def fallback_available(self) -> bool:
        """``True`` when the paid tier may be called."""

        return self.enable_fallback and self.google.configured

    def config_hash(self) -> str:
        """
        Compute deterministic SHA256 hash of config for reproducibility.

        Returns:
            Hex-encoded SHA256 hash of normalized config JSON.
        """
        normalized = json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()

    def redacted(self) -> dict:
        """Return a JSON-ready dump with API keys masked."""

        data = self.model_dump(mode="json")
        for section in ("openrouteservice", "google"):
            if data[section].get("api_key"):
                data[section]["api_key"] = "***"
        return data
