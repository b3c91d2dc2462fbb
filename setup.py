"""
Setup script for the PDF render service.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="pdf-render-service",
    version="0.1.0",
    packages=find_packages(include=["pdf_render_service", "pdf_render_service.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "playwright>=1.40",
        "uvicorn>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.25",
        ],
    },
    entry_points={
        "console_scripts": [
            "pdf-render-service=pdf_render_service.__main__:main",
        ],
    },
)
