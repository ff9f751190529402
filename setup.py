"""Setup script for queue-node-simulator."""

from setuptools import setup, find_packages

setup(
    name="queue-node-simulator",
    version="0.1.0",
    description="A tick-driven discrete-event simulator of a single queueing node",
    author="Queue Node Simulator",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        "simpy",
        "numpy",
        "pandas",
        "matplotlib",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "run-simulation=scripts.run_simulation:main",
        ],
    },
)
