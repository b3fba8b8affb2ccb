from .route import error_response, forward_to_origin, router

__all__ = ["error_response", "forward_to_origin", "router"]
