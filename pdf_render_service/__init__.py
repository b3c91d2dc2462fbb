"""
PDF Render Service - HTML to PDF over HTTP.

Accepts an HTML document, renders it with a shared headless Chromium
(driven through Playwright) and returns the PDF bytes. Browser lifecycle,
bounded concurrency and timeouts live here; layout and PDF encoding are
left to the browser.
"""

__version__ = "0.1.0"
