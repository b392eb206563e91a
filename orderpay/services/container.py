"""Wire stores, HTTP client and services together once per process."""

from dataclasses import dataclass

import httpx

from orderpay.core.config import Settings, get_settings
from orderpay.services.dispatcher import SideEffectDispatcher
from orderpay.services.email import EmailJobQueue, Mailer
from orderpay.services.processor import ProcessorClient, build_http_client
from orderpay.services.references import ReferenceCodec
from orderpay.services.sessions import SessionInitiator
from orderpay.services.webhooks import WebhookReconciler
from orderpay.stores.base import Stores, get_stores


@dataclass
class Services:
    settings: Settings
    stores: Stores
    http: httpx.AsyncClient
    processor: ProcessorClient
    codec: ReferenceCodec
    mailer: Mailer
    dispatcher: SideEffectDispatcher
    sessions: SessionInitiator
    reconciler: WebhookReconciler

    async def aclose(self) -> None:
        await self.http.aclose()


def build_services(
    settings: Settings,
    stores: Stores,
    http: httpx.AsyncClient | None = None,
    email_queue: EmailJobQueue | None = None,
) -> Services:
    http = http or build_http_client(settings)
    processor = ProcessorClient(http, settings)
    codec = ReferenceCodec(settings.tj_merchant_ref_prefix)
    mailer = Mailer(stores.emails, http, settings, queue=email_queue)
    dispatcher = SideEffectDispatcher(stores, mailer, settings)
    return Services(
        settings=settings,
        stores=stores,
        http=http,
        processor=processor,
        codec=codec,
        mailer=mailer,
        dispatcher=dispatcher,
        sessions=SessionInitiator(stores, processor, codec, settings),
        reconciler=WebhookReconciler(stores, codec, dispatcher, settings),
    )


async def create_services(settings: Settings | None = None, email_queue: EmailJobQueue | None = None) -> Services:
    settings = settings or get_settings()
    stores = await get_stores(settings)
    return build_services(settings, stores, email_queue=email_queue)
