"""Stripe Connect backend: accounts, onboarding, payments, transfers and payouts."""

__version__ = "0.1.0"
