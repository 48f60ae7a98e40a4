"""Clients and background services for the remote tracking service."""
