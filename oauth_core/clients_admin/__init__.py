# oauth_core/clients_admin/__init__.py
from .endpoints import oauth_clients_admin_router

__all__ = ["oauth_clients_admin_router"]
