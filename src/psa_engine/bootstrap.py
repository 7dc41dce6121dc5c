"""
PSA Engine - Runtime
=====================

Wires the ticket lifecycle, SLA and automation modules together.

Clean Architecture Layers:
- Application: TicketService, RuleEngine, SLAEvaluationService
- Domain: Ticket state machine, SLA calculator, rule decoding/evaluation
- Infrastructure: Database, tenant config file, notifier/webhook clients, scheduler

The runtime owns process-wide resources (engine, config watcher, side-effect
dispatcher, scheduler). Repositories and services are built per session with
EngineRuntime.services().
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from psa_engine.automation.application import RuleEngine
from psa_engine.automation.infrastructure import (
    NotificationClient,
    SideEffectDispatcher,
    SQLAlchemyRuleRepository,
    WebhookClient,
)
from psa_engine.config import Settings, settings as default_settings
from psa_engine.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)
from psa_engine.shared.infrastructure.logging import get_logger, setup_logging
from psa_engine.sla.application import SLAEvaluationService, SLASweepResult
from psa_engine.sla.infrastructure import SLAScheduler
from psa_engine.tickets.application import TicketService
from psa_engine.tickets.infrastructure import SQLAlchemyTicketRepository, TenantConfigManager

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Services bound to one database session."""
    tickets: TicketService
    automation: RuleEngine
    sla: SLAEvaluationService


class EngineRuntime:
    """
    Process-wide engine resources.

    STARTUP:
    1. Setup structured logging
    2. Initialize database (and tables outside production)
    3. Load tenant configuration and watch it
    4. Start the side-effect dispatcher
    5. Start the SLA scheduler

    SHUTDOWN runs the same steps in reverse.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or default_settings
        self.config_manager = TenantConfigManager()
        self.notifier = NotificationClient()
        self.webhooks = WebhookClient()
        self.dispatcher = SideEffectDispatcher(
            self.notifier,
            self.webhooks,
            max_queue_size=self.settings.side_effect_queue_size
        )
        self.scheduler: Optional[SLAScheduler] = None

    def services(self, session: AsyncSession) -> ServiceContainer:
        """Build session-scoped services."""
        ticket_repo = SQLAlchemyTicketRepository(session, self.config_manager)
        engine = RuleEngine(
            ticket_repo,
            SQLAlchemyRuleRepository(session),
            self.config_manager,
            self.dispatcher,
            max_pass_depth=self.settings.automation_max_pass_depth,
        )
        return ServiceContainer(
            tickets=TicketService(ticket_repo, self.config_manager, engine),
            automation=engine,
            sla=SLAEvaluationService(
                ticket_repo,
                self.config_manager,
                engine,
                warning_threshold=self.settings.sla_warning_threshold,
            ),
        )

    @asynccontextmanager
    async def session_services(self) -> AsyncGenerator[ServiceContainer, None]:
        async with get_session_context() as session:
            yield self.services(session)

    async def run_sla_sweep(self) -> SLASweepResult:
        """Background SLA evaluation job."""
        async with self.session_services() as services:
            return await services.sla.evaluate_all()

    async def start(self) -> None:
        setup_logging(self.settings.log_level, self.settings.environment)
        logger.info("Starting PSA engine", extra={
            "version": self.settings.app_version,
            "environment": self.settings.environment
        })

        init_database(self.settings.database_url)
        if self.settings.environment != "production":
            # Development convenience; production uses migrations
            try:
                await create_tables()
            except Exception as e:
                logger.warning("Database not available, tables not created", extra={"error": str(e)})

        self.config_manager.load(self.settings.tenant_config_path)
        self.config_manager.start_watching()

        await self.dispatcher.start()

        if self.settings.sla_evaluation_interval > 0:
            self.scheduler = SLAScheduler(
                interval_seconds=self.settings.sla_evaluation_interval,
                run_immediately=self.settings.sla_sweep_on_start,
            )
            await self.scheduler.start(self.run_sla_sweep)
        else:
            logger.info("SLA scheduler disabled")

        logger.info("PSA engine started")

    async def stop(self) -> None:
        logger.info("Shutting down PSA engine")

        if self.scheduler:
            await self.scheduler.stop()
            self.scheduler = None

        await self.dispatcher.stop()
        self.config_manager.stop_watching()
        await self.notifier.close()
        await self.webhooks.close()
        await close_database()


@asynccontextmanager
async def lifespan(config: Optional[Settings] = None) -> AsyncGenerator[EngineRuntime, None]:
    """
    Run the engine for the duration of the block.

    Usage:
        async with lifespan() as runtime:
            async with runtime.session_services() as services:
                await services.tickets.create_ticket(...)
    """
    runtime = EngineRuntime(config)
    await runtime.start()
    try:
        yield runtime
    finally:
        await runtime.stop()


async def serve(config: Optional[Settings] = None) -> None:
    """Run the scheduler-driven engine until SIGINT/SIGTERM."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    async with lifespan(config):
        await stop_event.wait()


def main() -> None:
    asyncio.run(serve())


if __name__ == "__main__":
    main()
