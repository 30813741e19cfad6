from setuptools import setup


setup(
    name="paap-doctor",
    version="0.1.0",
    description="CPV registry and annual procurement plan (PAAP) spreadsheet extraction and analysis",
    packages=["paap_doctor"],
    python_requires=">=3.9",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "paap-doctor=paap_doctor.cli:main",
        ]
    },
)
