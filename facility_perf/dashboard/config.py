"""Configuration management for the dashboard data performance layer.

Supports YAML-based configuration with per-dataset presets.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..data.models import DEFAULT_SEARCH_FIELDS, VirtualScrollConfig


@dataclass
class SourceConfig:
    """Configuration for the remote record source."""

    url: Optional[str] = None  # None means no remote source configured
    table: str = "contractor_tracker"
    order: str = "created_at.desc"
    api_key: Optional[str] = None
    timeout: int = 30  # seconds, enforced by the transport
    verify: bool = True
    ca_bundle: Optional[str] = None
    transport_retries: int = 0


@dataclass
class CacheConfig:
    """Intelligent cache budgets."""

    max_entries: int = 1000
    max_size_mb: float = 50
    max_age_minutes: float = 30
    sweep_interval: int = 300  # seconds; 0 disables the background sweep

    @property
    def max_size_bytes(self) -> int:
        return int(self.max_size_mb * 1024 * 1024)

    @property
    def max_age(self) -> timedelta:
        return timedelta(minutes=self.max_age_minutes)


@dataclass
class RequestConfig:
    """Request manager configuration."""

    timeout: int = 30  # seconds; informational, enforced by the transport
    batch_window_ms: int = 50
    max_batch_size: int = 10
    retries: int = 3  # attempts used by callers that opt into retries
    retry_backoff: List[float] = field(default_factory=lambda: [1, 2, 4])

    @property
    def batch_window(self) -> float:
        """Coalescing window in seconds."""
        return max(0, self.batch_window_ms) / 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeout": self.timeout,
            "batchWindowMs": self.batch_window_ms,
            "maxBatchSize": self.max_batch_size,
            "retries": self.retries,
            "retryBackoff": list(self.retry_backoff),
        }


@dataclass
class ScrollConfig:
    """Virtual-scroll configuration."""

    enabled: bool = True
    item_height: float = 60
    container_height: float = 400
    overscan: int = 5
    threshold: int = 50

    def to_geometry(self) -> VirtualScrollConfig:
        return VirtualScrollConfig(
            item_height=self.item_height,
            container_height=self.container_height,
            overscan=self.overscan,
            threshold=self.threshold,
        )


@dataclass
class ProcessingConfig:
    """Data processor configuration."""

    caching_enabled: bool = True
    retention: int = 50  # processor results kept by optimize_memory()
    search_fields: Tuple[str, ...] = DEFAULT_SEARCH_FIELDS


@dataclass
class MonitoringConfig:
    """Performance monitor configuration."""

    enabled: bool = True
    capacity: int = 100


@dataclass
class Config:
    """Main configuration container."""

    dataset: str = "contractors"
    page_size: int = 25

    source: SourceConfig = field(default_factory=SourceConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    requests: RequestConfig = field(default_factory=RequestConfig)
    virtual_scroll: ScrollConfig = field(default_factory=ScrollConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary."""
        # Parse source config
        src = data.get("source", {})
        source = SourceConfig(
            url=src.get("url"),
            table=src.get("table", "contractor_tracker"),
            order=src.get("order", "created_at.desc"),
            api_key=src.get("api_key"),
            timeout=src.get("timeout", 30),
            verify=src.get("verify", True),
            ca_bundle=src.get("ca_bundle"),
            transport_retries=src.get("transport_retries", 0),
        )

        # Parse cache config
        cache_data = data.get("cache", {})
        cache = CacheConfig(
            max_entries=cache_data.get("max_entries", 1000),
            max_size_mb=cache_data.get("max_size_mb", 50),
            max_age_minutes=cache_data.get("max_age_minutes", 30),
            sweep_interval=cache_data.get("sweep_interval", 300),
        )

        # Parse request manager config
        req_data = data.get("requests", {})
        requests_config = RequestConfig(
            timeout=req_data.get("timeout", source.timeout),
            batch_window_ms=req_data.get("batch_window_ms", 50),
            max_batch_size=req_data.get("max_batch_size", 10),
            retries=req_data.get("retries", 3),
            retry_backoff=req_data.get("retry_backoff", [1, 2, 4]),
        )

        vs_data = data.get("virtual_scroll", {})
        virtual_scroll = ScrollConfig(
            enabled=vs_data.get("enabled", True),
            item_height=vs_data.get("item_height", 60),
            container_height=vs_data.get("container_height", 400),
            overscan=vs_data.get("overscan", 5),
            threshold=vs_data.get("threshold", 50),
        )

        proc_data = data.get("processing", {})
        processing = ProcessingConfig(
            caching_enabled=proc_data.get("caching_enabled", True),
            retention=proc_data.get("retention", 50),
            search_fields=tuple(proc_data.get("search_fields", DEFAULT_SEARCH_FIELDS)),
        )

        mon_data = data.get("monitoring", {})
        monitoring = MonitoringConfig(
            enabled=mon_data.get("enabled", True),
            capacity=mon_data.get("capacity", 100),
        )

        return cls(
            dataset=data.get("dataset", {}).get("name", "contractors"),
            page_size=data.get("pagination", {}).get("page_size", 25),
            source=source,
            cache=cache,
            requests=requests_config,
            virtual_scroll=virtual_scroll,
            processing=processing,
            monitoring=monitoring,
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load config from YAML file."""
        if not path.exists():
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """Load config from path or defaults.

        Checks in order:
        1. Provided path
        2. FACILITY_PERF_CONFIG env var
        3. ./configs/config.yaml
        4. ./config.yaml
        5. ~/.facility_perf/config.yaml
        6. Default config
        """
        paths_to_try = []

        if config_path:
            paths_to_try.append(Path(config_path))

        if env_path := os.environ.get("FACILITY_PERF_CONFIG"):
            paths_to_try.append(Path(env_path))

        paths_to_try.extend([
            Path("./configs/config.yaml"),
            Path("./config.yaml"),
            Path.home() / ".facility_perf" / "config.yaml",
        ])

        for path in paths_to_try:
            if path.exists():
                return cls.from_yaml(path)

        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary (API key omitted)."""
        return {
            "dataset": {"name": self.dataset},
            "pagination": {"page_size": self.page_size},
            "source": {
                "url": self.source.url,
                "table": self.source.table,
                "order": self.source.order,
                "timeout": self.source.timeout,
                "verify": self.source.verify,
                "transport_retries": self.source.transport_retries,
            },
            "cache": {
                "max_entries": self.cache.max_entries,
                "max_size_mb": self.cache.max_size_mb,
                "max_age_minutes": self.cache.max_age_minutes,
                "sweep_interval": self.cache.sweep_interval,
            },
            "requests": {
                "timeout": self.requests.timeout,
                "batch_window_ms": self.requests.batch_window_ms,
                "max_batch_size": self.requests.max_batch_size,
                "retries": self.requests.retries,
                "retry_backoff": list(self.requests.retry_backoff),
            },
            "virtual_scroll": {
                "enabled": self.virtual_scroll.enabled,
                "item_height": self.virtual_scroll.item_height,
                "container_height": self.virtual_scroll.container_height,
                "overscan": self.virtual_scroll.overscan,
                "threshold": self.virtual_scroll.threshold,
            },
            "processing": {
                "caching_enabled": self.processing.caching_enabled,
                "retention": self.processing.retention,
                "search_fields": list(self.processing.search_fields),
            },
            "monitoring": {
                "enabled": self.monitoring.enabled,
                "capacity": self.monitoring.capacity,
            },
        }


def create_default_config(dataset: str = "contractors") -> Config:
    """Create a default configuration for a dashboard table.

    Args:
        dataset: 'contractors', 'hvac', or 'water_meters'
    """
    if dataset == "hvac":
        return Config(
            dataset="hvac",
            source=SourceConfig(table="hvac_tracker"),
            processing=ProcessingConfig(
                search_fields=(
                    "building",
                    "main_system",
                    "equipment_asset_id",
                    "finding_issue_description",
                    "latest_update_notes",
                ),
            ),
        )
    elif dataset == "water_meters":
        # Meter tables are large and read-mostly
        return Config(
            dataset="water_meters",
            page_size=50,
            source=SourceConfig(table="water_meters", order="id.asc"),
            cache=CacheConfig(max_age_minutes=60),
            processing=ProcessingConfig(search_fields=("meter_label", "zone", "type")),
        )
    else:
        return Config()
