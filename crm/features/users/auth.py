"""
Session token and identity provider utilities.

Tokens are issued by the identity provider (Appwrite). A token is genuine
when its signature verifies against SESSION_JWT_SECRET, or, without a
secret, when Appwrite accepts it as the session's own JWT.
"""
from typing import Any, Optional
import jwt
from appwrite.client import Client
from appwrite.services.account import Account
from appwrite.services.users import Users
from appwrite.exception import AppwriteException
from starlette.concurrency import run_in_threadpool

from crm.core import config
from crm.features.permissions.errors import IdentityLookupFailure
from crm.utils import get_logger


log = get_logger(__name__)


class AppwriteClient:
    """Singleton Appwrite client for server-side operations."""
    
    _instance: Optional[Client] = None
    
    @classmethod
    def get_client(cls) -> Client:
        """Get or create Appwrite client instance."""
        if cls._instance is None:
            cls._instance = Client()
            cls._instance.set_endpoint(config.APPWRITE_ENDPOINT)
            cls._instance.set_project(config.APPWRITE_PROJECT_ID)
            cls._instance.set_key(config.APPWRITE_API_KEY)
        return cls._instance


def session_client(token: str) -> Client:
    """Appwrite client acting as the session that owns `token`."""
    client = Client()
    client.set_endpoint(config.APPWRITE_ENDPOINT)
    client.set_project(config.APPWRITE_PROJECT_ID)
    client.set_jwt(token)
    return client


def decode_session_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and verify a session JWT signed with SESSION_JWT_SECRET.
    
    Returns:
        Decoded payload, or None if no secret is configured or the token is
        expired, malformed or wrongly signed
    """
    if not config.SESSION_JWT_SECRET:
        return None
    try:
        return jwt.decode(
            token,
            config.SESSION_JWT_SECRET,
            algorithms=[config.SESSION_JWT_ALGORITHM],
            options={"verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        log.debug("Session token expired")
        return None
    except jwt.InvalidTokenError as e:
        log.debug("Invalid session token: %s", e)
        return None


class AppwriteIdentityProvider:
    """Confirms identities and sessions against Appwrite."""
    
    def __init__(self, client: Optional[Client] = None):
        self.client = client or AppwriteClient.get_client()
    
    async def get_user(self, user_id: str) -> Optional[dict[str, Any]]:
        """
        Fetch a user from Appwrite.
        
        Returns:
            User information, or None if Appwrite reports the user missing
            
        Raises:
            IdentityLookupFailure: any other Appwrite or network error
        """
        users = Users(self.client)
        try:
            return await run_in_threadpool(users.get, user_id)
        except AppwriteException as e:
            if getattr(e, "code", None) == 404:
                log.info("Identity provider has no user %s", user_id)
                return None
            log.error("Identity provider lookup failed for %s: %s", user_id, e)
            raise IdentityLookupFailure(f"Identity provider lookup failed: {e}") from e
        except OSError as e:
            log.error("Identity provider unreachable: %s", e)
            raise IdentityLookupFailure(f"Identity provider unreachable: {e}") from e
    
    async def verify_session(self, token: str) -> Optional[dict[str, Any]]:
        """
        Ask Appwrite for the account behind a session JWT.
        
        Returns:
            Account information (``$id`` is the user id), or None if Appwrite
            rejects the token
            
        Raises:
            IdentityLookupFailure: any other Appwrite or network error
        """
        account = Account(session_client(token))
        try:
            return await run_in_threadpool(account.get)
        except AppwriteException as e:
            if getattr(e, "code", None) in (401, 403):
                log.info("Identity provider rejected session token: %s", e)
                return None
            log.error("Identity provider session check failed: %s", e)
            raise IdentityLookupFailure(f"Identity provider session check failed: {e}") from e
        except OSError as e:
            log.error("Identity provider unreachable: %s", e)
            raise IdentityLookupFailure(f"Identity provider unreachable: {e}") from e


def get_identity_provider() -> Optional[AppwriteIdentityProvider]:
    """Configured identity provider, or None when Appwrite is not configured."""
    if not config.APPWRITE_ENDPOINT:
        return None
    return AppwriteIdentityProvider()
