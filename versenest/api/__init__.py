from versenest.api.error_handling import register_exception_handlers
from versenest.api.router import api_router

__all__ = ["api_router", "register_exception_handlers"]
