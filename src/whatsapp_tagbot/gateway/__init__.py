"""Messaging gateway implementations."""

from .bridge_gateway import WhatsAppBridgeGateway

__all__ = ["WhatsAppBridgeGateway"]
