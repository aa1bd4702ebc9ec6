"""HTTP routers: customer pages and staff pages."""
