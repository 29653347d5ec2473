from neuralagent.api.routes.auth import router as auth_router
from neuralagent.api.routes.status import router as status_router
from neuralagent.api.routes.subscription import router as subscription_router

__all__ = ["auth_router", "status_router", "subscription_router"]
