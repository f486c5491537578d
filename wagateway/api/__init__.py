"""HTTP surface of the gateway: routes, middleware and shared helpers."""
