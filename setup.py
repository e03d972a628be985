from setuptools import setup, find_packages

setup(
    name="ticket-sync",
    version="0.1.0",
    packages=find_packages(include=["ticketsync", "ticketsync.*"]),
    python_requires=">=3.9",
    install_requires=[
        "supabase>=2.0",
        "python-dotenv",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
)
