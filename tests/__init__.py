"""
Test suite for Scrape Pipeline.
"""
