"""Page controllers: menu, checkout, dashboard, menu management."""
