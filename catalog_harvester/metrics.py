"""Prometheus metrics for the catalog harvester."""

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("catalog_harvester", "Catalog harvester application info")
app_info.info({"version": "0.1.0", "name": "catalog-harvester"})

# Job metrics
scrape_jobs_total = Counter(
    "scrape_jobs_total",
    "Total number of scrape jobs by terminal status",
    ["status"],
)

scrape_job_duration_seconds = Histogram(
    "scrape_job_duration_seconds",
    "Wall time of scrape jobs",
    buckets=[5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1200.0],
)

active_jobs = Gauge(
    "scrape_jobs_active",
    "Number of scrape jobs currently running",
)

# Navigation metrics
navigation_retries_total = Counter(
    "navigation_retries_total",
    "Total number of navigation retries",
    ["reason"],
)

# Discovery metrics
discovery_tier_selected_total = Counter(
    "discovery_tier_selected_total",
    "Discovery tier that produced the adopted result",
    ["kind", "tier"],
)

items_discovered_total = Counter(
    "items_discovered_total",
    "Total number of catalog items discovered",
)

# Detail fetch metrics
detail_fetches_total = Counter(
    "detail_fetches_total",
    "Total number of item detail fetch attempts",
    ["outcome"],
)

retry_rounds_total = Counter(
    "detail_retry_rounds_total",
    "Total number of detail retry rounds executed",
)

# Job store metrics
jobs_expired_total = Counter(
    "jobs_expired_total",
    "Total number of terminal job records removed by TTL sweep",
)
