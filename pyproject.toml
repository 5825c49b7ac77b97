[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gtusim"
version = "0.1.0"
description = "Assembler and simulator for the GTU-C312 teaching CPU and the operating systems written for it"
requires-python = ">=3.10"
dependencies = []
keywords = ["emulator", "simulator", "assembler", "cpu", "operating-system", "education"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
    "Topic :: Software Development :: Assemblers",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
gtu-sim = "gtusim.simulator:main"
gtu-assembler = "gtusim.assembler:main"

[tool.hatch.build.targets.wheel]
packages = ["gtusim"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
