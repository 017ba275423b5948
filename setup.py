"""Setup script for clinic-documents package following Cosmic Python pattern."""

from setuptools import setup, find_namespace_packages

setup(
    name="clinic-documents",
    version="1.0.0",
    description="Clinic Documents - object-store document access and appointment result PDF reports",
    author="Clinic Documents Team",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["clinic_documents*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi",
        "uvicorn[standard]",
        "pydantic",
        "anyio>=4.1",
        "redis",
        "minio",
        "urllib3",
        "PyMuPDF",
        "pymupdf-fonts",
        "python-multipart",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-cov",
            "httpx",
            "fakeredis",
        ],
        "scripts": [
            "requests",
            "tenacity",
        ],
        "dev": [
            "black",
            "flake8",
            "mypy",
            "pre-commit",
        ],
    },
    entry_points={
        "console_scripts": [
            "documents-consumer=clinic_documents.entrypoints.redis_eventconsumer:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Healthcare Industry",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
    ],
)
