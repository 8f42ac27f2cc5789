#!/usr/bin/env python

# Todo list to prepare a release:
#  - git pull  # check that there is no incoming changes
#  - run: pytest
#  - edit covers/version.py: check/set version
#  - edit ChangeLog: set release date
#  - git commit, git tag covers-x.y, git push --tags
#  - python -m build; twine upload dist/*
#
# After the release:
#  - edit covers/version.py: set version to n+1
#  - edit ChangeLog: add a new empty section for version n+1

import importlib.util
from os import path

from setuptools import setup

CLASSIFIERS = [
    'Intended Audience :: Developers',
    'Development Status :: 4 - Beta',
    'Environment :: Console',
    'License :: OSI Approved :: MIT License',
    'Operating System :: OS Independent',
    'Natural Language :: English',
    'Programming Language :: Python',
    'Programming Language :: Python :: 3',
    'Topic :: Software Development :: Testing :: Mocking',
]

MODULES = (
    "covers",
)


def load_version():
    spec = importlib.util.spec_from_file_location("version", path.join("covers", "version.py"))
    version = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(version)
    return version


def main():
    covers = load_version()
    PACKAGES = {}
    for name in MODULES:
        PACKAGES[name] = name.replace(".", "/")

    with open('README.rst') as fp:
        long_description = fp.read()
    with open('ChangeLog') as fp:
        long_description += fp.read()

    install_options = {
        "name": covers.PACKAGE,
        "version": covers.VERSION,
        "url": covers.WEBSITE,
        "download_url": covers.WEBSITE,
        "description": "Build-time function mocking",
        "long_description": long_description,
        "long_description_content_type": "text/x-rst",
        "classifiers": CLASSIFIERS,
        "license": covers.LICENSE,
        "packages": list(PACKAGES.keys()),
        "package_dir": PACKAGES,
        "python_requires": ">=3.10",
        "install_requires": [],
        "extras_require": {"test": ["pytest"]},
        "entry_points": {"console_scripts": ["covers=covers.application:main"]},
    }
    setup(**install_options)


if __name__ == "__main__":
    main()
