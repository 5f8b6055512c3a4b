# -*- coding: utf-8 -*-
import pathlib
import site
import sys

import setuptools

# odd bug with develop (editable) installs, see: https://github.com/pypa/pip/issues/7953
site.ENABLE_USER_SITE = "--user" in sys.argv[1:]

required = [
    "numpy",
    "loguru",
]

extras = {
    "test": ["pytest"],
    "dev": ["pytest", "doit", "ruff"],
}

here = pathlib.Path(__file__).parent.resolve()

long_description = (here / "README.md").read_text(encoding="utf-8")

# Read version
version = {}
with open(here / "src/dtdaq/_version.py", "r") as f:
    exec(f.read(), version)

if __name__ == "__main__":
    setuptools.setup(
        name="dtdaq",
        version=version["__version__"],
        description="SCPI client for the Data Translation DT8824 data acquisition module.",
        long_description=long_description,
        long_description_content_type="text/markdown",
        keywords=[
            "DAQ",
            "SCPI",
            "DT8824",
            "Data Translation",
            "Instrument control",
        ],
        classifiers=[
            "License :: OSI Approved :: MIT License",
            "Development Status :: 3 - Alpha",
        ],
        license="MIT",
        package_dir={"": "src"},
        packages=setuptools.find_packages(
            where="src",
            exclude=["*.test", "*.test.*", "test.*", "test", "test_*"],
        ),
        install_requires=required,
        extras_require=extras,
        python_requires=">= 3.11",
    )
