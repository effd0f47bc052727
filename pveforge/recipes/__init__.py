"""Built-in app recipes and apt source templates."""
