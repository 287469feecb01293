"""Prometheus exporter for CAPZ scalability test results."""

__version__ = "0.1.0"
