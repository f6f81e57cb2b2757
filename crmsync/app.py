"""
CRM Sync — Application wiring.

Builds every component from `settings` and keeps one sync session alive
until interrupted.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from crmsync.core.connection import ConnectionManager
from crmsync.core.navigation import HighlightState, HistoryNavigator, NavigationCoordinator
from crmsync.core.preferences import NotificationSettings
from crmsync.core.reconciler import CrmSnapshot, CrmStore
from crmsync.core.sync_service import SyncService
from crmsync.core.toasts import ToastCenter
from crmsync.data.db import PreferenceDB
from crmsync.integrations.crm_api import CrmApiClient

logger = logging.getLogger(__name__)


@dataclass
class App:
    store: CrmStore
    navigator: HistoryNavigator
    coordinator: NavigationCoordinator
    toasts: ToastCenter
    service: SyncService


def _log_snapshot(snapshot: CrmSnapshot) -> None:
    logger.info(
        "CRM state: %d contact(s), %d global task(s)",
        len(snapshot.contacts), len(snapshot.global_tasks),
    )


def build_app(initial_url: str = "/") -> App:
    """Create all components, wired together, without connecting."""
    from crmsync.config import settings

    store = CrmStore()
    store.subscribe(_log_snapshot)

    navigator = HistoryNavigator(initial_url)
    coordinator = NavigationCoordinator(
        navigator,
        store=store,
        highlight=HighlightState(duration=settings.HIGHLIGHT_SECONDS),
    )

    notifier = None
    if settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_CHAT_ID:
        from crmsync.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier.from_token(settings.TELEGRAM_BOT_TOKEN)

    toasts = ToastCenter(
        settings=NotificationSettings(PreferenceDB(), user_id=settings.USER_ID),
        coordinator=coordinator,
        limit=settings.TOAST_LIMIT,
        duration=settings.TOAST_SECONDS,
        notifier=notifier,
        chat_id=settings.TELEGRAM_CHAT_ID,
    )

    connection = ConnectionManager(
        settings.CRM_API_URL,
        reconnection_attempts=settings.SOCKET_RECONNECTION_ATTEMPTS,
        reconnection_delay_ms=settings.SOCKET_RECONNECTION_DELAY_MS,
    )
    service = SyncService(CrmApiClient(), connection, store, toasts=toasts)
    return App(store, navigator, coordinator, toasts, service)


async def run(initial_url: str = "/") -> None:
    from crmsync.config import settings

    app = build_app(initial_url)
    try:
        await app.service.start(settings.CRM_API_TOKEN)
        app.coordinator.handle_initial_load(initial_url, authenticated=True)
        await asyncio.Event().wait()
    finally:
        await app.service.stop()


def main() -> None:
    """Entry point: run one sync session until Ctrl+C."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting CRM sync...")
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
