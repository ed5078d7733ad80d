from setuptools import setup


setup(
    name="qm-ingest",
    version="0.1.0",
    description="Ingest call-center QM spreadsheets and classify call outcomes by campaign category",
    packages=["qm_ingest"],
    python_requires=">=3.9",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "requests",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "qm-ingest=qm_ingest.cli:main",
        ]
    },
)
