#!/usr/bin/env python

from setuptools import setup
import os.path
import re


name = "pytuplelayer"

classifiers = [
    "Development Status :: 2 - Pre-Alpha",
    "Intended Audience :: Developers",
    "License :: OSI Approved :: Apache Software License",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: Implementation :: CPython",
    "Topic :: Database",
    ]


def read_long_description():
    with open("README.rst", "r") as f:
        long_description = f.read()
    return long_description


def read_version():
    """Read the package version from source."""
    path = os.path.relpath(os.path.join(name, "__init__.py"))
    with open(path, "r") as f:
        match = re.search(r'^__version__ = "([^"]+)"', f.read(), re.M)
    return match.group(1)


if __name__ == "__main__":
    setup_kwargs = {
        "name": name,
        "version": read_version(),
        "description": "An order-preserving tuple encoding for "
                       "ordered key-value stores",
        "long_description": read_long_description(),
        "classifiers": classifiers,
        "license": "Apache 2.0",
        "packages": [name, "%s.tests" % name],
        "python_requires": ">=3.6",
        }
    setup(**setup_kwargs)
