from setuptools import setup, find_packages

setup(
    name="vxg",
    version="0.1.0",
    description="Record from the microphone, then transcribe with a streaming LLM",
    author="",
    python_requires=">=3.9",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "google-genai>=1.0.0",
        "httpx>=0.27.0",
        "google-auth>=2.10.0",
        "rich>=12.5.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0.0",
        "pypubsub>=4.0.3",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "vxg=vxg.main:main",
        ],
    },
)
