"""Blockchain node connectivity probe over JSON-RPC."""
