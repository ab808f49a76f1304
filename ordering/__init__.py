"""
Order checkout: payment gateways, signature verification and the
fulfillment workflow.
"""

from ordering.orchestrator import OrderOrchestrator
from ordering.payments import PaymentVerifier

__all__ = ["OrderOrchestrator", "PaymentVerifier"]
