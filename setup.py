# -*- coding: utf-8 -*-
import setuptools
import pathlib
import site
import sys

# odd bug with develop (editable) installs, see: https://github.com/pypa/pip/issues/7953
site.ENABLE_USER_SITE = "--user" in sys.argv[1:]

required = [
    "numpy",
    "mashumaro",
    "loguru",
    "setproctitle",
    "click>=8.0.0",
    "psutil>=6.1.0",
]

extras = {
    # the UHD bindings ship with UHD itself (apt/conda/source builds), the
    # PyPI wheel only covers some platforms
    "uhd": ["uhd"],
    "test": ["pytest", "doit"],
}

here = pathlib.Path(__file__).parent.resolve()

long_description = (here / "README.md").read_text(encoding="utf-8")

# Read version
version = {}
with open("src/uhdbridge/_version.py", "r") as f:
    exec(f.read(), version)

if __name__ == "__main__":
    setuptools.setup(
        name="uhdbridge",
        version=version["__version__"],
        description="SCPI/TCP bridge for UHD software-defined radio receivers.",
        long_description=long_description,
        long_description_content_type="text/markdown",
        keywords=[
            "SDR",
            "UHD",
            "USRP",
            "SCPI",
            "oscilloscope",
        ],
        classifiers=[
            "Development Status :: 3 - Alpha",
        ],
        package_dir={"": "src"},
        packages=setuptools.find_packages(
            where="src",
            exclude=["*.test", "*.test.*", "test.*", "test", "test_*"],
        ),
        entry_points={
            "console_scripts": [
                "uhdbridge=uhdbridge.cli:cli",
            ],
        },
        install_requires=required,
        extras_require=extras,
        python_requires=">= 3.11",
        setup_requires=["wheel"],  # force install of wheel first
    )
