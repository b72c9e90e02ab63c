"""Service layer for billing notifications."""
