"""Build adapters from the sources config."""

from __future__ import annotations

import logging

from envrisk.common.config_loader import ConfigBundle
from envrisk.common.errors import ConfigError
from envrisk.common.http import HttpClient
from envrisk.sources.base import SourceAdapter
from envrisk.sources.bulk import BulkExtractAdapter
from envrisk.sources.remote import RemoteQueryAdapter
from envrisk.sources.water import WaterViolationAdapter

ADAPTER_KINDS: dict[str, type[SourceAdapter]] = {
    RemoteQueryAdapter.kind: RemoteQueryAdapter,
    BulkExtractAdapter.kind: BulkExtractAdapter,
    WaterViolationAdapter.kind: WaterViolationAdapter,
}


def build_adapter(
    name: str,
    source_config: dict,
    bundle: ConfigBundle | None = None,
    *,
    http_client: HttpClient | None = None,
    logger: logging.Logger | None = None,
) -> SourceAdapter:
    adapter_cls = ADAPTER_KINDS.get(source_config.get("kind"))
    if adapter_cls is None:
        raise ConfigError(f"Unknown source kind for {name}: {source_config.get('kind')}")
    return adapter_cls(
        name,
        source_config,
        http_client=http_client,
        timeout=bundle.timeout_config() if bundle is not None else None,
        retry=bundle.retry_config() if bundle is not None else None,
        logger=logger,
    )


def build_adapters(
    bundle: ConfigBundle,
    *,
    http_client: HttpClient | None = None,
    logger: logging.Logger | None = None,
) -> list[SourceAdapter]:
    return [
        build_adapter(name, cfg, bundle, http_client=http_client, logger=logger)
        for name, cfg in bundle.enabled_sources().items()
    ]
