"""Application-wide configuration and settings.

Uses ``pydantic-settings`` so values can be overridden via environment
variables prefixed with ``SPECGRAPH_``.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Global settings for the specification graph engine.

    Attributes:
        app_name: Display name of the application.
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_logs: Render log lines as JSON instead of the console format.
        neo4j_uri: Bolt / ``neo4j://`` connection string.  Empty means no
            persistent backend is configured and the in-memory store is used.
        neo4j_user: Neo4j database username.
        neo4j_password: Neo4j database password.
        neo4j_database: Neo4j target database name.
        neo4j_max_connection_pool_size: Driver connection pool size.
        neo4j_connection_timeout: Seconds to wait when connecting or
            acquiring a pooled connection.
        spec_dir: Default source directory for ``load_and_index``.
        spec_extensions: File extensions treated as specification documents.
        default_blacklist: Directory/file patterns to skip while loading.
        max_file_size_bytes: Skip documents larger than this threshold.
        default_max_depth: Traversal depth used when callers pass none.
        default_search_limit: Pattern search limit used when callers pass none.
    """

    app_name: str = "specgraph"
    log_level: str = "INFO"
    json_logs: bool = False

    # Persistent backend
    neo4j_uri: str = ""
    neo4j_user: str = "neo4j"
    neo4j_password: str = ""
    neo4j_database: str = "neo4j"
    neo4j_max_connection_pool_size: int = 50
    neo4j_connection_timeout: float = 60.0

    # Document loading
    spec_dir: str = "yml_files"
    spec_extensions: list[str] = [".yaml", ".yml", ".json"]
    default_blacklist: list[str] = [
        ".git",
        "__pycache__",
        "node_modules",
        ".venv",
        "venv",
        ".pytest_cache",
    ]
    max_file_size_bytes: int = 10_485_760  # 10 MB

    # Queries
    default_max_depth: int = 3
    default_search_limit: int = 50

    model_config = {"env_prefix": "SPECGRAPH_", "env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
