"""
Service container.

Builds the store and every service once, wires the logger to the rule
engine and configures the monitor singleton.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import httpx

from watchpost.core.config import Settings, get_settings
from watchpost.db.session import create_engine_from_settings
from watchpost.db.store import EventStore, SQLAlchemyEventStore
from watchpost.services.alert_dispatcher import AlertDispatcher
from watchpost.services.alerting_service import AlertingService
from watchpost.services.analytics_service import AuthAnalyticsService
from watchpost.services.channels import ChannelRegistry
from watchpost.services.event_logger import SecurityEventLogger
from watchpost.services.health_checks import HealthChecker
from watchpost.services.login_tracker import LoginAttemptTracker
from watchpost.services.mfa_service import MFAService
from watchpost.services.password_policy import PasswordPolicyService
from watchpost.services.reporting_service import SecurityReportingService
from watchpost.services.security_monitor import SecurityMonitor


@dataclass
class ServiceContainer:
    settings: Settings
    store: EventStore
    analytics: AuthAnalyticsService
    dispatcher: AlertDispatcher
    event_logger: SecurityEventLogger
    alerting: AlertingService
    login_tracker: LoginAttemptTracker
    mfa: MFAService
    password_policy: PasswordPolicyService
    health_checker: HealthChecker
    monitor: SecurityMonitor
    reporting: SecurityReportingService

    async def close(self) -> None:
        await self.monitor.stop_monitoring()
        if isinstance(self.store, SQLAlchemyEventStore):
            await self.store.dispose()


def build_container(
    settings: Optional[Settings] = None,
    store: Optional[EventStore] = None,
    channel_registry: Optional[ChannelRegistry] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> ServiceContainer:
    """
    Build every service over one store.

    Args:
        settings: Settings override
        store: Store override; defaults to a SQLAlchemy store on DATABASE_URL
        channel_registry: Notification channels; defaults to the built-in set
        http_transport: httpx transport used by the API health probes
        clock: Time source shared by every service
    """
    settings = settings or get_settings()
    if store is None:
        store = SQLAlchemyEventStore(create_engine_from_settings(settings))

    analytics = AuthAnalyticsService(store, clock=clock)
    dispatcher = AlertDispatcher(store, registry=channel_registry, settings=settings, clock=clock)
    event_logger = SecurityEventLogger(store, analytics=analytics, dispatcher=dispatcher, clock=clock)
    alerting = AlertingService(store, dispatcher, settings=settings, clock=clock)
    event_logger.attach_alert_engine(alerting)

    health_checker = HealthChecker(store, settings=settings, transport=http_transport)
    monitor = SecurityMonitor.get_instance().configure(
        store,
        event_logger,
        health_checker,
        alerting=alerting,
        settings=settings,
        clock=clock,
    )

    return ServiceContainer(
        settings=settings,
        store=store,
        analytics=analytics,
        dispatcher=dispatcher,
        event_logger=event_logger,
        alerting=alerting,
        login_tracker=LoginAttemptTracker(store, event_logger, settings=settings, clock=clock),
        mfa=MFAService(store, event_logger, settings=settings, clock=clock),
        password_policy=PasswordPolicyService(store, event_logger, settings=settings, clock=clock),
        health_checker=health_checker,
        monitor=monitor,
        reporting=SecurityReportingService(store, monitor=monitor, settings=settings, clock=clock),
    )
