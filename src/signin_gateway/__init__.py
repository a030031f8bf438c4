"""Offline-first sign-in kiosk gateway: durable queue, sync engine and offline interceptor."""

__version__ = "1.0.0"
