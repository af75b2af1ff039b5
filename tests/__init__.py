"""Test suite for portfolio_sync."""
