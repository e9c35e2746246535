from setuptools import setup, find_packages

setup(
    name="idioma",
    version="0.1.0",
    description="Idioma - leveled news reading backend",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "aiohttp>=3.8.0",
        "beautifulsoup4>=4.10.0",
        "trafilatura>=1.2.0",
        "readability-lxml>=0.8.1",
        "lxml>=4.9.0",
        "lxml_html_clean>=0.1.0",
        "openai>=1.40.0",
        "backoff>=1.11.0",
        "async-timeout>=4.0.0",
        "pyyaml>=6.0",
        "python-dotenv>=1.0.0",
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "httpx>=0.24.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "idioma=idioma.cli:main",
        ],
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
