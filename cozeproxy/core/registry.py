"""Service registry for breaking circular imports.

Routes look up the active ``ProxyService`` here instead of importing the
main module, which imports the routes.
"""

# Global service instance - set by main.create_app during initialization
service = None


def set_service(service_instance):
    """Set the global service instance."""
    global service
    service = service_instance


def get_service():
    """Get the global service instance."""
    if service is None:
        raise RuntimeError("Service not initialized. Did you call set_service?")
    return service
