from setuptools import setup, find_packages

setup(
    name="music_companion",
    version="0.1.0",
    description="Now-playing sync server for OBS browser overlays",
    author="Soren Frederiksen",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"music_companion.gateway": ["templates/*.html"]},
    python_requires=">=3.10",
    install_requires=[
        "click>=8.0.0",
        "fastapi>=0.109.0",
        "uvicorn[standard]>=0.27.0",
        "jinja2>=3.1.0",
        "websockets>=12.0",
        "httpx>=0.25.0",
        "pydantic>=2.0.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "dev": ["pytest>=7.0.0", "pytest-cov>=4.0.0"],
    },
    entry_points={
        "console_scripts": [
            "music_companion_service=music_companion.service:main",
        ],
    },
)
