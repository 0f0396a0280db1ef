"""WhatsApp tag bot - owner/admin gated group mentions over a WhatsApp bridge."""

__version__ = "0.1.0"
