import logging
from datetime import timedelta

import click
from flask import Flask

from soul_match.config import AppConfig
from soul_match.domain.catalog import DEFAULT_CATALOG, Catalog
from soul_match.domain.models import utc_now
from soul_match.repositories.handoff_state_repository import HandoffStateRepository
from soul_match.repositories.local_slot import LocalSessionSlot
from soul_match.services.link_service import LinkBuilder, LinkResolver
from soul_match.services.scoring_service import ScoringService
from soul_match.services.session_store import build_session_store
from soul_match.web.routes import register_routes
from soul_match.workflows.handoff_workflow import HandoffWorkflow


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(config: AppConfig | None = None, catalog: Catalog = DEFAULT_CATALOG) -> Flask:
    config = config or AppConfig.from_env()
    configure_logging(config.log_level)

    local_slot = LocalSessionSlot(config)
    local_slot.init_schema()
    states = HandoffStateRepository(config)
    states.init_schema()

    store = build_session_store(config)
    scoring_service = ScoringService(catalog)
    workflow = HandoffWorkflow(
        scoring_service=scoring_service,
        store=store,
        resolver=LinkResolver(store, local_slot),
        local_slot=local_slot,
        link_builder=LinkBuilder(config.public_base_url),
    )

    app = Flask(__name__)
    app.secret_key = config.secret_key

    register_routes(app, catalog=catalog, scoring_service=scoring_service, workflow=workflow, states=states)

    @app.cli.command("sweep-sessions")
    def sweep_sessions() -> None:
        """Delete expired sessions and idle handoff states."""
        deleted = store.sweep_expired()
        click.echo(f"Deleted {deleted} expired sessions")
        stale = states.delete_stale(utc_now() - timedelta(hours=config.session_ttl_hours))
        click.echo(f"Deleted {stale} idle handoff states")

    return app
