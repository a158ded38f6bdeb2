"""
Builds the production object graph (stores, engine, workflow) from settings.

Workers, the API and the CLI all go through these helpers so they share one
way of wiring the SQLAlchemy stores, the Celery queue and the HTTP adapters.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinicflow.automation.actions import ActionExecutor
from clinicflow.automation.conditions import ConditionEvaluator
from clinicflow.automation.context import ContextEnricher
from clinicflow.automation.engine import RuleEngine
from clinicflow.automation.store import SqlAlchemyAutomationStore
from clinicflow.booking.assistant import BookingAssistant
from clinicflow.booking.intent import IntentClassifier
from clinicflow.booking.notifications import ManagerNotifier
from clinicflow.booking.store import SqlAlchemyBookingStore
from clinicflow.booking.workflow import BookingWorkflow
from clinicflow.config import Settings
from clinicflow.core.brain import Brain
from clinicflow.core.secrets import llm_key_name, resolve_secret
from clinicflow.integrations.telegram_notify import TelegramNotifier
from clinicflow.integrations.webhook import WebhookAdapter
from clinicflow.workers.jobs import CeleryJobQueue, JobQueue


def build_booking_workflow(session_factory: async_sessionmaker[AsyncSession], settings: Settings) -> BookingWorkflow:
    store = SqlAlchemyBookingStore(session_factory)
    notifier = ManagerNotifier(
        store,
        notifier_factory=lambda slug: TelegramNotifier.from_secrets(slug, dashboard_url=settings.dashboard_url),
    )
    return BookingWorkflow(store, notifier=notifier)


def build_rule_engine(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    jobs: JobQueue | None = None,
) -> RuleEngine:
    store = SqlAlchemyAutomationStore(session_factory)
    evaluator = ConditionEvaluator(timezone=settings.timezone)
    executor = ActionExecutor(
        store,
        jobs or CeleryJobQueue(),
        webhook=WebhookAdapter({"timeout": settings.webhook_timeout_seconds}),
        workflow=build_booking_workflow(session_factory, settings),
        evaluator=evaluator,
    )
    return RuleEngine(
        store,
        executor,
        enricher=ContextEnricher(store, timezone=settings.timezone),
        evaluator=evaluator,
    )


def build_intent_classifier(tenant_slug: str, settings: Settings) -> IntentClassifier:
    api_key = resolve_secret(tenant_slug, llm_key_name(settings.intent_provider))
    if not api_key:
        # Without a key the classifier runs on keywords only.
        return IntentClassifier(None)
    return IntentClassifier(Brain.from_settings(settings, api_key=api_key))


def build_booking_assistant(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    tenant_slug: str,
) -> BookingAssistant:
    workflow = build_booking_workflow(session_factory, settings)
    return BookingAssistant(build_intent_classifier(tenant_slug, settings), workflow, workflow.store)
