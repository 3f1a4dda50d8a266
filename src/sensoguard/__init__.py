"""SensoGuard: live dashboard for IoT sensor readings stored in a managed table."""

__version__ = "0.3.0"
