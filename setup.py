import os

from setuptools import setup


def get_version():
    path = os.path.join(os.path.dirname(__file__), "bacarg", "core.py")
    with open(path) as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip('"')
    raise RuntimeError("Unable to find version string")


def main():
    setup(
        name="bacarg",
        version=get_version(),
        description="Bayesian inference of bacterial ancestral conversion graphs",
        license="GPLv3+",
        packages=["bacarg"],
        python_requires=">=3.8",
        install_requires=["numpy", "newick", "tskit", "daiquiri"],
        extras_require={"test": ["pytest"]},
        entry_points={"console_scripts": ["bacarg=bacarg.cli:bacarg_main"]},
        classifiers=[
            "Programming Language :: Python :: 3",
            "License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)",
            "Topic :: Scientific/Engineering :: Bio-Informatics",
        ],
    )


if __name__ == "__main__":
    main()
