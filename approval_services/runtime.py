"""
Process bootstrap -- apply the active configuration to the runtime.

Responsibility:
    Reads the configuration through ``get_active_config()`` and applies its
    ``logging`` and ``database`` sections: configures the ``approval_kernel``
    logger hierarchy at ``logging.level`` and initialises the engine from
    ``database.url`` with the configured pool settings.  Optionally creates
    the schema and seeds the configured companies in one transaction.

Architecture position:
    Services -- outer.  The only caller of ``init_engine_from_url`` and
    ``configure_logging`` outside of tests.
"""

from __future__ import annotations

from pathlib import Path

from approval_config import get_active_config
from approval_config.schema import ApprovalEngineConfig
from approval_kernel.db.engine import create_tables, init_engine_from_url, session_scope
from approval_kernel.logging_config import configure_logging, get_logger
from approval_services.seeding import seed_from_config

logger = get_logger("services.runtime")


def bootstrap(
    config_path: Path | str | None = None,
    *,
    create_schema: bool = False,
    seed: bool = False,
) -> ApprovalEngineConfig:
    """Configure logging and the database engine from the active config.

    Logging is configured before the engine so the engine's own startup
    line is emitted at the configured level.  Returns the config used.
    """
    config = get_active_config(config_path)
    configure_logging(level=config.logging_level)

    db = config.database
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )
    if create_schema:
        create_tables()

    seeded = 0
    if seed:
        with session_scope() as session:
            seeded = len(seed_from_config(session, config))

    logger.info(
        "approval_engine_bootstrapped",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "logging_level": config.logging_level,
            "schema_created": create_schema,
            "companies_seeded": seeded,
        },
    )
    return config
