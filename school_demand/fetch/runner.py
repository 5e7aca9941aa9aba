"""Fetch stage: download each configured dataset once and cache it on disk.

A cached file is reused as-is. There is no staleness check against the
remote source; pass ``refresh=True`` (``--refresh``) or delete the cached
file to pick up a newer publication.
"""

from __future__ import annotations

import logging
from pathlib import Path

import requests

from school_demand.common.config_loader import ConfigBundle
from school_demand.common.constants import DATASETS
from school_demand.common.errors import FetchError
from school_demand.common.fs import ensure_dir, write_json
from school_demand.common.http import HttpClient, HttpRequestError
from school_demand.common.logging import log_event, log_warning
from school_demand.common.time_utils import utc_timestamp_iso


def raw_dir(data_dir: Path) -> Path:
    return data_dir / "raw"


def dataset_path(data_dir: Path, dataset_cfg: dict) -> Path:
    return raw_dir(data_dir) / dataset_cfg["filename"]


def _fetch_one(
    name: str,
    dataset_cfg: dict,
    data_dir: Path,
    client: HttpClient,
    *,
    refresh: bool,
    run_id: str,
    logger: logging.Logger | None,
) -> dict:
    target = dataset_path(data_dir, dataset_cfg)
    url = (dataset_cfg.get("url") or "").strip()
    cached = target.exists()

    if cached and not refresh:
        log_event(logger, f"using cached {name}", run_id=run_id, stage="fetch", dataset=name, event="CACHE_HIT", status="ok")
        return {"dataset": name, "path": str(target), "url": url or None, "cache_hit": True, "bytes": target.stat().st_size}

    if not url:
        if cached:
            log_warning(
                logger,
                f"refresh requested but no url configured for {name}; keeping cached copy",
                run_id=run_id,
                stage="fetch",
                dataset=name,
                event="CACHE_HIT",
                status="warning",
            )
            return {"dataset": name, "path": str(target), "url": None, "cache_hit": True, "bytes": target.stat().st_size}
        raise FetchError(f"Dataset {name}: no cached copy at {target} and no url configured")

    try:
        written = client.download(url, target)
    except (HttpRequestError, requests.RequestException) as exc:
        if cached:
            log_warning(
                logger,
                f"download failed for {name}; keeping cached copy",
                run_id=run_id,
                stage="fetch",
                dataset=name,
                event="DOWNLOAD_FAILED",
                status="warning",
                error_code=getattr(exc, "error_code", "HTTP_ERROR"),
            )
            return {"dataset": name, "path": str(target), "url": url, "cache_hit": True, "bytes": target.stat().st_size}
        raise FetchError(f"Dataset {name}: download from {url} failed: {exc}") from exc

    log_event(
        logger,
        f"downloaded {name}",
        run_id=run_id,
        stage="fetch",
        dataset=name,
        event="DOWNLOADED",
        status="ok",
        rows_out=written,
    )
    return {"dataset": name, "path": str(target), "url": url, "cache_hit": False, "bytes": written}


def _fetch_all(
    bundle: ConfigBundle,
    data_dir: Path,
    client: HttpClient,
    *,
    refresh: bool,
    run_id: str,
    logger: logging.Logger | None,
) -> list[dict]:
    return [
        _fetch_one(name, bundle.dataset(name), data_dir, client, refresh=refresh, run_id=run_id, logger=logger)
        for name in DATASETS
    ]


def run_fetch(
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    *,
    client: HttpClient | None = None,
    refresh: bool = False,
    logger: logging.Logger | None = None,
) -> dict:
    ensure_dir(raw_dir(data_dir))
    if client is None:
        with HttpClient() as owned_client:
            results = _fetch_all(bundle, data_dir, owned_client, refresh=refresh, run_id=run_id, logger=logger)
    else:
        results = _fetch_all(bundle, data_dir, client, refresh=refresh, run_id=run_id, logger=logger)

    payload = {
        "run_id": run_id,
        "fetched_at": utc_timestamp_iso(),
        "datasets": results,
    }
    write_json(raw_dir(data_dir) / "fetch_manifest.json", payload)
    return payload
