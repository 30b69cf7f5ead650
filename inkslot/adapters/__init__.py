"""
Adapters layer - External integrations (hosted store, payments, auth).
"""

from .mock_backend import InMemoryStore, MockIdentityProvider, MockPaymentGateway
from .postgrest_store import PostgrestStore
from .session_authenticator import SessionAuthenticator
from .stripe_gateway import StripeGateway

__all__ = [
    "InMemoryStore",
    "MockIdentityProvider",
    "MockPaymentGateway",
    "PostgrestStore",
    "SessionAuthenticator",
    "StripeGateway",
]
