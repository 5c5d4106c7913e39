"""Actions package - Operations that change a server."""

from svp.actions.auth import AuthAction, AuthStatus
from svp.actions.site import SiteAction, SiteState, read_site_state
from svp.actions.ssl import SSLAction
from svp.actions.vhost import ActionContract, VhostTransaction, create_backup_path

__all__ = [
    "ActionContract",
    "AuthAction",
    "AuthStatus",
    "SSLAction",
    "SiteAction",
    "SiteState",
    "VhostTransaction",
    "create_backup_path",
    "read_site_state",
]
