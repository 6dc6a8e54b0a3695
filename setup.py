#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/14 16:12
# @Author  : hejun
"""
项目安装文件
"""
from setuptools import setup, find_packages
import pathlib

here = pathlib.Path(__file__).parent.resolve()

# 读取README
long_description = (here / "README.md").read_text(encoding="utf-8")

setup(
    name="via-address-search",
    version="1.0.0",
    description="道路地址（calle / carrera）邻近检索系统：语义检索 + 结构化范围检索兜底",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Via Address Search Team",
    author_email="example@example.com",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Scientific/Engineering :: Information Analysis",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    keywords="address, proximity search, semantic search, colombia, via",
    packages=find_packages(where=".", include=["config", "core", "utils"]),
    py_modules=["main"],
    package_data={"config": ["gazetteers.json"]},
    include_package_data=True,
    python_requires=">=3.9, <4",
    install_requires=[
        "pandas>=1.5.0",
        "numpy>=1.23.0",
        "joblib>=1.2.0",
        "tqdm>=4.64.0",
        "SQLAlchemy>=2.0.0",
        "PyMySQL>=1.0.2",
        "requests>=2.28.0",
        "qdrant-client>=1.10.0",
    ],
    extras_require={
        "dev": ["pytest>=7.0", "black>=22.0", "flake8>=5.0"],
        "postgres": ["psycopg2-binary>=2.9"],
    },
    entry_points={
        "console_scripts": [
            "via-address-search=main:main",
        ],
    },
)
