"""AISDK 安装配置"""
from setuptools import setup, find_packages
import os

# 读取 README
readme_path = os.path.join(os.path.dirname(__file__), "README.md")
long_description = ""
if os.path.exists(readme_path):
    with open(readme_path, "r", encoding="utf-8") as f:
        long_description = f.read()

setup(
    name="llm-aisdk",
    version="0.1.0",
    description="多厂商大模型 API 统一调用层：凭证轮询、流式解码、错误分类与指标",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="llm-aisdk Team",
    author_email="",
    url="https://github.com/your-org/llm-aisdk",
    packages=find_packages(where=".", include=["llm_aisdk*"]),
    package_dir={"": "."},
    package_data={"llm_aisdk.providers": ["data/*.json"]},
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "openai>=1.40.0",
        "httpx>=0.23.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=23.0.0",
            "flake8>=6.0.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    keywords="llm, openai, deepseek, sdk, load balancing, streaming",
)
