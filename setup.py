import os, re
from setuptools import setup, find_packages

PACKAGE = "fnaop"


def read_file(filepath: str) -> str:
    """Read and return the content of a file."""
    with open(filepath, "r", encoding="utf-8") as f:
        return f.read().strip()


def get_dependencies() -> list:
    """Retrieve dependencies from the requirements file."""
    depfile = "requirements.txt"
    if os.path.exists(depfile):
        return [
            line.strip() for line in read_file(depfile).splitlines()
            if line.strip() and not line.startswith("#")
        ]
    return []


def get_version() -> str:
    """Retrieve the package version from the version file."""
    versionfile = os.path.join(PACKAGE, "_version.py")

    if os.path.exists(versionfile):
        verstrline = read_file(versionfile)
        components = dict(
            re.findall(r"^VERSION_(MAJOR|MINOR|PATCH) = (\d+)", verstrline, re.M)
        )
        if len(components) == 3:
            return "{MAJOR}.{MINOR}.{PATCH}".format(**components)
        raise RuntimeError("Unable to find version components in '_version.py'.")

    raise FileNotFoundError("Version file '_version.py' not found.")


extras_require = {
    # Testing dependencies
    "test": [
        "pytest>=7.4.0",
        "pytest-cov>=4.1.0",
        "hypothesis>=6.88.0",  # Property-based testing
    ],
    # Development dependencies
    "dev": [
        "pytest>=7.4.0",
        "pytest-cov>=4.1.0",
        "hypothesis>=6.88.0",
        "black>=23.0.0",
        "flake8>=6.0.0",
        "pyright>=1.1.0",
    ],
}

if __name__ == '__main__':
    setup(
        name="fnaop",
        version=get_version(),
        description="Before/after hooks woven into Python functions at definition time.",
        long_description=read_file("README.md"),
        long_description_content_type="text/markdown",
        license="Apache-2.0",
        packages=find_packages(include=[PACKAGE, f"{PACKAGE}.*"]),
        install_requires=get_dependencies(),
        extras_require=extras_require,
        python_requires=">=3.9",
        classifiers=[
            "Development Status :: 3 - Alpha",
            "Intended Audience :: Developers",
            "License :: OSI Approved :: Apache Software License",
            "Operating System :: OS Independent",
            "Programming Language :: Python :: 3",
            "Programming Language :: Python :: 3.9",
            "Programming Language :: Python :: 3.10",
            "Programming Language :: Python :: 3.11",
            "Programming Language :: Python :: 3.12",
            "Topic :: Software Development :: Code Generators",
            "Topic :: Software Development :: Libraries :: Python Modules",
        ],
        keywords="aop aspect decorator hooks code-generation libcst",
        entry_points={
            "console_scripts": [
                "fnaop=fnaop.__main__:main",
            ],
        },
    )
