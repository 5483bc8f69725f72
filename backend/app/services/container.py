"""
Service container.

Every collaborator is constructed once here and handed to the others
explicitly; nothing reaches for a module-level singleton. Tests build the
same graph around a temporary database and fake adapters.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy.orm import sessionmaker

from ai import GroqTextGenerator
from app.agent.conversation_service import ConversationService
from app.agent.executor import EffectExecutor
from app.agent.intent_analyzer import IntentThresholds
from app.agent.maintenance_scheduler import MaintenanceScheduler
from app.agent.session_store import SessionStore
from app.agent.step_machine import MachineConfig
from app.core.config import Settings, settings as default_settings
from app.payments.gateway import PaymentGateway
from app.payments.providers.base import PaymentProviderAdapter
from app.payments.providers.bictorys_provider import BictorysProvider
from app.payments.providers.cash_provider import CashProvider
from app.payments.providers.stripe_provider import StripeProvider
from app.payments.reconciler import WebhookReconciler
from app.schemas.payment import PaymentProvider
from app.services.analytics import ConversationAnalytics
from app.services.delivery_zones import DeliveryZoneResolver
from app.services.notification_service import LogEmailSender, NotificationService, ResendEmailSender
from app.services.order_service import OrderService
from app.services.realtime import RealtimeHub
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: RecordStore
    sessions: SessionStore
    resolver: DeliveryZoneResolver
    orders: OrderService
    gateway: PaymentGateway
    reconciler: WebhookReconciler
    conversations: ConversationService
    notifications: NotificationService
    analytics: ConversationAnalytics
    hub: RealtimeHub
    scheduler: MaintenanceScheduler


def build_adapters(config: Settings) -> Dict[PaymentProvider, PaymentProviderAdapter]:
    bictorys = BictorysProvider(
        api_url=config.BICTORYS_API_URL,
        api_key=config.BICTORYS_API_KEY,
        webhook_secret=config.BICTORYS_WEBHOOK_SECRET,
        public_app_url=config.PUBLIC_APP_URL,
        timeout=config.PAYMENT_TIMEOUT_SECONDS,
    )
    return {
        PaymentProvider.STRIPE: StripeProvider(
            secret_key=config.STRIPE_SECRET_KEY,
            webhook_secret=config.STRIPE_WEBHOOK_SECRET,
            public_app_url=config.PUBLIC_APP_URL,
            min_amount_cents=config.STRIPE_MIN_AMOUNT_CENTS,
            ttl_minutes=config.STRIPE_CHECKOUT_TTL_MINUTES,
            xof_per_eur=config.XOF_PER_EUR,
        ),
        PaymentProvider.WAVE: bictorys,
        PaymentProvider.ORANGE_MONEY: bictorys,
        PaymentProvider.CASH: CashProvider(),
    }


def build_services(
    session_factory: sessionmaker,
    config: Settings = default_settings,
    adapters: Optional[Dict[PaymentProvider, PaymentProviderAdapter]] = None,
    email_sender=None,
    text_generator=None,
) -> Services:
    store = RecordStore(session_factory)
    hub = RealtimeHub()
    analytics = ConversationAnalytics(store)

    if email_sender is None:
        if config.RESEND_API_KEY:
            email_sender = ResendEmailSender(config.RESEND_API_KEY, config.NOTIFICATION_FROM_EMAIL)
        else:
            logger.warning("[Services] RESEND_API_KEY not set, emails will only be logged")
            email_sender = LogEmailSender()
    notifications = NotificationService(store, email_sender)

    sessions = SessionStore(store, config.SESSION_INACTIVITY_SECONDS, config.SESSION_MESSAGE_WINDOW)
    resolver = DeliveryZoneResolver(store, config.DELIVERY_ZONE_CACHE_SECONDS)
    orders = OrderService(store, notifications, config.DEFAULT_CURRENCY)
    gateway = PaymentGateway(store, adapters or build_adapters(config), config.PAYMENT_TIMEOUT_SECONDS)
    reconciler = WebhookReconciler(store, gateway, hub, notifications)

    machine_config = MachineConfig(
        thresholds=IntentThresholds(
            ready_to_buy=config.READY_TO_BUY_THRESHOLD,
            express_checkout=config.EXPRESS_CHECKOUT_THRESHOLD,
        ),
        default_country=config.DEFAULT_COUNTRY,
    )
    executor = EffectExecutor(resolver, orders, gateway, analytics, config.DEFAULT_CURRENCY)
    conversations = ConversationService(
        store,
        sessions,
        executor,
        analytics,
        text_generator if text_generator is not None else GroqTextGenerator(config.GROQ_API_KEY),
        machine_config,
    )
    reconciler.status_listener = conversations.apply_payment_update

    scheduler = MaintenanceScheduler(sessions, notifications, analytics, config.MAINTENANCE_INTERVAL_SECONDS)

    return Services(
        store=store,
        sessions=sessions,
        resolver=resolver,
        orders=orders,
        gateway=gateway,
        reconciler=reconciler,
        conversations=conversations,
        notifications=notifications,
        analytics=analytics,
        hub=hub,
        scheduler=scheduler,
    )
