"""Order intake service with delayed WhatsApp notifications."""
