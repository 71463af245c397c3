"""
CLI module for Scrape Pipeline.

Provides command-line interface using Typer:
- run: Crawl and extract for every configured scraper
- extract: Extract a local HTML file
- init-config: Write the default configuration
"""

from scrape_pipeline.cli.main import app

__all__ = ["app"]
