"""Site auditor: crawl a website and report technical SEO issues."""

__version__ = "0.1.0"
