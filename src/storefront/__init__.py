"""storefront - cart, checkout and catalog core for a hosted-backend shop."""

__version__ = "0.1.0"
