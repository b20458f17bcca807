from fastapi import APIRouter
from academy.api.v1.routes import admin, auth, forum, payments, scheduler, subscriptions, trading_journal, webhooks

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(scheduler.cron_router, prefix="/cron", tags=["scheduler"])
api_router.include_router(scheduler.router, prefix="/scheduler", tags=["scheduler"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_router.include_router(forum.router, prefix="/forum", tags=["forum"])
api_router.include_router(trading_journal.router, prefix="/trading-journal", tags=["trading-journal"])
