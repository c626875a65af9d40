"""Inbound webhook handling."""
