"""IPTU scraper package.

Consumes contributor numbers from a remote work queue and looks each one up
on the São Paulo IPTU site through a pool of browser sessions, pacing
requests and backing off engine-wide after clustered failures.

Key modules:
    engine          -- ScraperEngine chunked dispatch over the driver pool
    driver_pool     -- DriverPool fixed arena of session slots
    session         -- SessionSlot, ChromeSessionFactory, identity fingerprints
    pacing          -- PacingPolicy human-like jittered delays
    failure_tracker -- FailureTracker rolling window and cooldown state
    aggregator      -- BatchAggregator thread-safe batch counters
    rate_limiter    -- RateLimiter hourly job throttling
    job_source      -- JobSource/BatchStore contracts, InMemoryJobSource
    supabase        -- SupabaseClient queue, result and batch tables
    base            -- BaseExtractor abstract extraction pipeline
    scrapers        -- IptuExtractor for the São Paulo form
    storage         -- ResultSink and JsonlStorage
    backoff         -- BackoffStrategy for HTTP retries
    models          -- Job, ScrapeResult, IptuRecord, BatchSnapshot, ... dataclasses
    config          -- ScraperConfig and environment Settings
    errors          -- exception hierarchy
"""

__version__ = "0.1.0"
