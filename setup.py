# setup.py
from setuptools import setup, find_packages

setup(
    name="spendlens",
    version="0.1.0",
    description="Import bank exports, categorize transactions and browse the spending summary",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"webapp": ["templates/*.html", "static/*"]},
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=[
        "click>=7.0",
        "pyyaml>=5.3",
        "pandas>=1.1",
        "numpy>=1.21",
        "scikit-learn>=1.0",
        "sentence-transformers>=2.2",
        "huggingface_hub>=0.20",
        "python-dotenv>=0.19",
        "fastapi>=0.95",
        "jinja2>=3.0",
        "python-multipart>=0.0.6",
        "uvicorn>=0.20",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "spendlens=spendlens.cli:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
