"""API routes."""

from fastapi import APIRouter

from backoffice.api.routes import twilio_webhooks

api_router = APIRouter()

# Public webhooks (signature-validated)
api_router.include_router(twilio_webhooks.router, prefix="/webhooks/twilio", tags=["twilio-webhooks"])
