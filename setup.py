from setuptools import find_packages, setup

setup(
    name="chunkscribe",
    version="0.1.0",
    description="Chunked live dictation: record, transcribe locally and insert into a document, with optional LLM cleanup",
    long_description=open("README.md", "r", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "fastapi",
        "ffmpeg-python",
        "httpx",
        "uvicorn",
        "pydantic>=2",
        "pydantic-settings",
        "python-dotenv",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "chunkscribe-server=chunkscribe.chunkscribe_server:main",
        ],
    },
    python_requires=">=3.9",
)
