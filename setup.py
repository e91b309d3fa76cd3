from setuptools import setup

setup(
    name="aimath2doc",
    version="2.0",
    packages=["aimath2doc"],
    python_requires=">=3.9",
    install_requires=[
        "python-docx",
        "latex2mathml",
        "lxml",
        "mathml2omml",
        "regex",
        "markdown",
        "beautifulsoup4>=4.10",
        "pygments",
        "matplotlib",
        "pydantic>=2",
        "playwright",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "aimath2doc = aimath2doc.cli:main"
        ]
    }
)
