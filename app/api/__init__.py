"""API package: endpoint modules and router aggregation."""
