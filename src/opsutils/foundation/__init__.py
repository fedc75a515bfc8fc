"""Foundation utilities for shared infrastructure components.

This package provides shared utilities including:
- HTTP request executor with sawtooth retry on transport failures
- Structured JSON logging with TRACE and FATAL levels
- Retry building blocks for tenacity
"""
