"""Competitor dish pricing scraped from the Swiggy search API."""

__version__ = "0.1.0"
