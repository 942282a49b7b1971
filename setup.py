from setuptools import setup, find_packages

setup(
    name="instapaper_csv_import",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "httpx>=0.25.0",
        "python-dotenv>=1.0.0",
        "pydantic>=2.0.0",
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        "requests>=2.31.0",
        "requests-oauthlib>=1.3.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    author="Your Name",
    author_email="your.email@example.com",
    description="Массовый импорт статей из CSV в Instapaper через прокси с xAuth",
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/instapaper_csv_import",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    entry_points={
        "console_scripts": [
            "instapaper-import=instapaper_importer.main:main",
            "instapaper-proxy=instapaper_importer.proxy_server:serve",
        ],
    },
)
