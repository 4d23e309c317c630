"""Adapters implementing core ports and serving the datasource protocol."""
