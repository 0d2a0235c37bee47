"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # App Settings
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False                   # JSON lines on the console
    log_dir: str = ""                        # Empty disables the JSON log file
    app_host: str = "0.0.0.0"
    app_port: int = 8001

    # ==========================================================================
    # Fetch Settings
    # ==========================================================================
    direct_timeout_seconds: float = 10.0     # Plain HTTP GET
    render_timeout_seconds: float = 20.0     # Headless navigation
    render_selector_wait_ms: int = 5000      # Bound on waiting for a product heading
    render_settle_ms: int = 1000             # Pause after scrolling for lazy images
    extraction_deadline_seconds: float = 45.0  # Whole extract() call, both strategies
    rendering_enabled: bool = True
    blocking_status_codes: list[int] = [403, 429, 503]
    terminal_status_codes: list[int] = [404, 410]

    # ==========================================================================
    # Strategy Selection (domain lists are data, edit freely)
    # ==========================================================================
    requires_rendering: list[str] = [
        "zara.com",
        "farfetch.com",
        "ssense.com",
        "net-a-porter.com",
        "cultgaia.com",
        "matchesfashion.com",
        "mytheresa.com",
        "wconcept.com",
        "revolve.com",
        "fwrd.com",
        "nordstrom.com",
        "saksfifthavenue.com",
        "bloomingdales.com",
        "miumiu.com",
        "prada.com",
        "gucci.com",
    ]
    maybe_requires_rendering: list[str] = [
        "uniqlo.com",
        "gap.com",
        "oldnavy.com",
    ]
    blocks_direct_fetch: list[str] = [
        "cos.com",
        "arket.com",
        "stories.com",
        "hm.com",
        "aritzia.com",
        "urbanoutfitters.com",
    ]

    # ==========================================================================
    # Confidence Thresholds
    # ==========================================================================
    min_confidence: float = 0.7              # Below this, maybe-render domains escalate
    cache_confidence_floor: float = 0.5      # Results above this are cached
    learn_confidence_threshold: float = 0.7  # Results above this teach the pattern store

    # ==========================================================================
    # Result Cache
    # ==========================================================================
    cache_enabled: bool = True
    cache_max_size: int = 200
    cache_ttl_seconds: int = 3600            # Direct-fetch results
    rendered_cache_ttl_seconds: int = 7200   # Rendered results cost more to rebuild
    redis_url: str = ""                      # Empty disables the shared Redis layer
    redis_cache_prefix: str = "parser:"

    # ==========================================================================
    # Pattern Learning
    # ==========================================================================
    pattern_learning_enabled: bool = True
    pattern_db_path: str = "data/pattern-db.json"

    # ==========================================================================
    # Images
    # ==========================================================================
    max_images: int = 10
    smart_images_enabled: bool = True
    image_validation_enabled: bool = True
    image_validation_ceiling: int = 15       # Skip HEAD probes above this many candidates
    image_probe_concurrency: int = 8
    image_probe_timeout_seconds: float = 2.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="UNIVERSAL_",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
