"""
Verify package imports work correctly.

These tests ensure the package is properly installed and modules
can be imported. Critical for catching setup.py/installation issues
in CI environments.
"""


def test_pdf_render_service_package_structure():
    """Verify pdf_render_service package is importable."""
    import importlib.util
    spec = importlib.util.find_spec('pdf_render_service')
    assert spec is not None, "pdf_render_service should be importable (package must be installed)"


def test_html_helpers_can_be_imported():
    """Verify html_helpers module can be imported with all functions."""
    from pdf_render_service.html_helpers import (
        normalize_html,
        sanitize_filename,
        ResourcePolicy,
    )
    assert callable(normalize_html)
    assert callable(sanitize_filename)
    assert callable(ResourcePolicy.from_lists)


def test_app_can_be_imported():
    """Verify the FastAPI app can be imported and exposes the PDF route."""
    from pdf_render_service.app import app
    assert app is not None
    paths = {route.path for route in app.routes}
    assert "/health" in paths
    assert "/api/gerar-pdf" in paths


def test_entrypoint_can_be_imported():
    """Verify the console-script entrypoint resolves."""
    from pdf_render_service.__main__ import main
    assert callable(main)
