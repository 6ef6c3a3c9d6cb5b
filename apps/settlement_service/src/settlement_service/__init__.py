"""Dual-confirmation settlement service for two-party staked challenges."""
