from .request_id_middleware import *
from .security_middleware import *
from .actor_middleware import *

__all__ = [
    "RequestIDMiddleware",
    "SecurityHeadersMiddleware",
    "ActorMiddleware",
    "get_current_actor",
    "require_roles",
    "require_staff",
]
