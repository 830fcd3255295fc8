"""Temporal fact graph over company filings."""
