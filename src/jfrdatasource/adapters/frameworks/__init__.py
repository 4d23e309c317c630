"""HTTP framework adapters for the datasource protocol."""
