"""HTTP surface: app factory, routes and dependencies."""
