"""
Domain constants used across services/routers.
"""

# Stripe event types consumed by the webhook receiver
EVENT_PAYMENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_PAYMENT_FAILED = "payment_intent.payment_failed"

# Request headers
STRIPE_SIGNATURE_HEADER = "stripe-signature"
TEST_MODE_HEADER = "x-test-mode"
INTERNAL_API_KEY_HEADER = "X-Internal-API-Key"

# Minor units per major currency unit (cents)
MINOR_UNITS = 100

# Object storage key prefix: orders/<orderId>/<timestamp>.json
ORDER_ARCHIVE_PREFIX = "orders"

# Source tag sent to the admin panel sink
ADMIN_PANEL_SOURCE = "stripe-webhook"
