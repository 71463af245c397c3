"""
Pipeline module for Scrape Pipeline.

Joins the crawl engine to the extractor and hands results downstream.
"""

from scrape_pipeline.pipeline.runner import (
    Pipeline,
    PipelineReport,
    MemorySink,
    build_pipeline,
)

__all__ = [
    "Pipeline",
    "PipelineReport",
    "MemorySink",
    "build_pipeline",
]
