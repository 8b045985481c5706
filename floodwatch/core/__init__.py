"""
Core package: cross-cutting concerns.

Modules:
    config            environment variables & settings
    logging_config    structured JSON / pretty logging
    errors            exception hierarchy & handlers
    health            health check aggregation
    database          async SQLAlchemy engine for the area store
    cache             Redis cache layer
    middleware        request logging / correlation IDs
"""
