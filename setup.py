from setuptools import setup, find_packages

setup(
    name="auto-downscale",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "fastapi==0.104.1",
        "uvicorn==0.24.0",
        "pydantic>=2.5.0,<3",
        "pydantic-settings==2.1.0",
        "python-dotenv==1.0.0",
        "kubernetes==37.0.1",
        "urllib3>=1.26,<3",
    ],
    extras_require={
        "test": [
            "pytest==7.4.3",
            "pytest-asyncio==0.21.1",
            "httpx==0.25.2",
        ],
    },
    python_requires=">=3.11",
)
