"""Track simulator AI traffic through the X-Plane Web API, with a mock server for testing."""

__version__ = "0.1.0"