[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "emvkit"
version = "0.1.0"
description = "Tools for EMV smart cards: BER-TLV parsing, EMV tag decoding, PIN blocks, APDU exchange and TCP card reader transports"
requires-python = ">=3.10"
dependencies = []
keywords = ["emv", "smart card", "tlv", "ber-tlv", "apdu", "iso7816", "t=0", "t=1", "payment"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial :: Point-Of-Sale",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["emvkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
