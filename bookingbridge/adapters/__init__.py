"""
Adapters layer - External integrations (SimplyBook.me, Facebook Conversions API).
"""

from .facebook_client import ConversionsAPIClient
from .simplybook_authenticator import SimplyBookAuthenticator
from .simplybook_client import SimplyBookClient

__all__ = ["ConversionsAPIClient", "SimplyBookAuthenticator", "SimplyBookClient"]
