"""
                        Services Module

Clients for external systems, following the hybrid architecture pattern:
each service has a Mock (development) and a Real (staging/production)
implementation behind a cached factory.

Services:
    - backend: Hosted database, realtime, file storage and auth (Supabase)
"""

from oona.services.backend import get_backend_service, reset_backend_service

__all__ = ["get_backend_service", "reset_backend_service"]
