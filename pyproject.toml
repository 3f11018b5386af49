[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "jfpowerctrl"
version = "1.0"
description = "Line-based TCP control server for detector power supplies, module enables and LEDs exposed as sysfs-style files"
requires-python = ">=3.10"
dependencies = []
keywords = ["detector", "power control", "hwmon", "gpio", "tcp server"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Instrument Drivers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
jfpowerctrl = "jfpowerctrl.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["jfpowerctrl"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
