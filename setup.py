"""
Setup file.
"""

from pathlib import Path

from setuptools import find_packages, setup

URL = "https://github.com/guest-supervisor/guest-supervisor"
KEYWORDS = "qemu guest supervisor watchdog named pipes test harness"
HERE = Path(__file__).parent



if __name__ == "__main__":
    setup(
        name="guest-supervisor",
        version="1.0.0",
        description="Supervise emulated guests over line-oriented named pipes, with a liveness watchdog.",
        keywords=KEYWORDS,
        url=URL,
        python_requires=">=3.10",
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        install_requires=["psutil"],
        extras_require={"test": ["pytest"]},
        entry_points={"console_scripts": ["guest-supervisor=guest_supervisor.cli:main"]},
        include_package_data=True)
