"""
Health checks for liveness/readiness probes.

Checks:
- Stripe API reachability
- Identity store reachability
"""
from datetime import datetime, timezone
from typing import Any, Dict

import structlog

from connect_backend.config import get_settings
from connect_backend.core.identity_store import IdentityStore
from connect_backend.integrations.stripe_client import StripeClient, StripeError

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Health check service for the Stripe dependency and the identity store."""

    def __init__(self, stripe_client: StripeClient, store: IdentityStore) -> None:
        self.settings = get_settings()
        self.stripe_client = stripe_client
        self.store = store

    async def check_stripe(self) -> Dict[str, Any]:
        """
        Check Stripe API reachability.

        Returns:
            Dict[str, Any]: Stripe health status

        Raises:
            HealthCheckError: If Stripe check fails
        """
        try:
            await self.stripe_client.ping()
        except StripeError as e:
            logger.error("stripe_health_check_failed", error=str(e))
            raise HealthCheckError(f"Stripe health check failed: {str(e)}")

        return {
            "status": "healthy",
            "service": "stripe",
            "test_mode": self.settings.is_test_mode,
        }

    async def check_identity_store(self) -> Dict[str, Any]:
        """
        Check the identity store answers lookups.

        Raises:
            HealthCheckError: If the store lookup fails
        """
        try:
            await self.store.contains("__health__")
        except Exception as e:
            logger.error("identity_store_health_check_failed", error=str(e))
            raise HealthCheckError(f"Identity store health check failed: {str(e)}")

        return {
            "status": "healthy",
            "service": "identity_store",
            "backend": self.settings.identity_store_backend,
        }

    async def liveness(self) -> Dict[str, Any]:
        """Static liveness status; never touches dependencies."""
        return {
            "status": "ok",
            "service": self.settings.app_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def readiness(self) -> Dict[str, Any]:
        """
        Run all dependency checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks: Dict[str, Any] = {}
        all_healthy = True

        for name, check in (
            ("stripe", self.check_stripe),
            ("identity_store", self.check_identity_store),
        ):
            try:
                checks[name] = await check()
            except HealthCheckError as e:
                checks[name] = {"status": "unhealthy", "service": name, "error": str(e)}
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }
