"""Encoders for datasource protocol responses."""
