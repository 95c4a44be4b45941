"""CLI package for the AQI bridge."""
