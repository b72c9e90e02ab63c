"""Paymail API package."""
