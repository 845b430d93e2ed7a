"""Webhook server, notification ledger and watch lease manager."""
