"""Record API backend for the club sign-in kiosk and admin dashboard."""

__version__ = "1.0.0"
